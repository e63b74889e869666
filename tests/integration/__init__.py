"""
Integration tests for extbuild.

These tests run the complete build (generation, compilation, archiving and
linking) with the host C++ toolchain.
"""
