#!/usr/bin/env python3
"""
Entry point for running mm_replicator as a module.
This file enables: python -m mm_replicator
"""

from .main import main

if __name__ == '__main__':
    main()
