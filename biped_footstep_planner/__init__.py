"""Footstep planning for bipedal robots over planar-region terrain."""

__version__ = '0.1.0'
