"""
py-mapgen: procedural terrain, hydrology and territories on an irregular mesh.
"""

__version__ = "0.1.0"
