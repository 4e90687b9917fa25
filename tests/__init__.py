"""Test package for the dual N-back trainer.

Core tests exercise sequence generation, scoring and persistence without a
display. The pygame smoke tests use SDL's dummy video/audio drivers so no real
window opens. Run ``pytest`` from the project root.
"""
