"""
Command line entry point.

Usage:
    python -m py_mapgen [--seed SEED] [--points N] [--cities N] [--territories N]
"""

import argparse
from typing import List, Optional

import numpy as np

from .config import GenerationParams
from .core.generator import generate_map
from .utils.log_config import configure_logging


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Generate a fantasy map")
    parser.add_argument("--seed", help="Seed string for reproducible maps")
    parser.add_argument("--points", type=int, default=4096,
                        help="Number of random points before relaxation")
    parser.add_argument("--cities", type=int, default=15, help="Number of cities")
    parser.add_argument("--territories", type=int, default=5,
                        help="Number of territories")

    args = parser.parse_args(argv)
    configure_logging()

    params = GenerationParams(
        seed=args.seed,
        n_points=args.points,
        n_cities=args.cities,
        n_territories=args.territories,
    )
    result = generate_map(params)

    print(f"Vertices:    {result.mesh.vertex_count}")
    print(f"Land:        {np.mean(result.heights.values > 0):.1%}")
    print(f"Rivers:      {len(result.rivers)}")
    print(f"Coastlines:  {len(result.coastlines)}")
    print(f"Cities:      {len(result.cities)}")
    print(f"Territories: {len(result.capitals)}")
    print(f"Borders:     {len(result.borders)}")


if __name__ == "__main__":
    main()
