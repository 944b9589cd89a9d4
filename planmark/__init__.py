"""
Planmark: precise floorplan annotation for building surveys.
"""
__version__ = "0.1.0"
