"""
Depscan Module Entry Point
===========================

Allows running the Depscan CLI via: python -m depscan
"""

from depscan.cli import main

if __name__ == "__main__":
    main()
