#!/usr/bin/env python3
"""
BioTune CLI entry point: allows running the simulation with "python -m biotune"
"""
from .main import main

if __name__ == "__main__":
    main()
