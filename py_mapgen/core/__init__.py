"""
Core map generation functionality.
"""

from .errors import FieldMismatchError, MapGenerationError, MeshConfigurationError, SinkFillingNotConverged
from .tessellation import Extent, ScipyVoronoiTessellator, Tessellation, Tessellator, VoronoiEdge
from .mesh import Mesh, MeshConfig, MeshEdge, build_mesh, generate_mesh
from .heightfield import HeightField
from .hydrology import BOUNDARY, LOCAL_MINIMUM, DownhillCache, HydrologyOptions
from .priority_queue import HeapPriorityQueue, PriorityQueue
from .territories import UNASSIGNED, Territories, get_territories
from .generator import GeneratedMap, MapGenerator, generate_map

__all__ = ['FieldMismatchError', 'MapGenerationError', 'MeshConfigurationError',
           'SinkFillingNotConverged', 'Extent', 'ScipyVoronoiTessellator',
           'Tessellation', 'Tessellator', 'VoronoiEdge', 'Mesh', 'MeshConfig',
           'MeshEdge', 'build_mesh', 'generate_mesh', 'HeightField', 'BOUNDARY',
           'LOCAL_MINIMUM', 'DownhillCache', 'HydrologyOptions',
           'HeapPriorityQueue', 'PriorityQueue', 'UNASSIGNED', 'Territories',
           'get_territories', 'GeneratedMap', 'MapGenerator', 'generate_map']
