#!/usr/bin/env python3
"""Convenience runner for the trail tracker CLI.

Usage:
    python run.py replay samples.csv --route-gpx planned.gpx
"""
import logging
import sys

from trail_tracker.main import main

if __name__ == "__main__":
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    sys.exit(main())
