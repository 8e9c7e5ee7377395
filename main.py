#!/usr/bin/env python3
"""
Code Graph Engine - Main Entry Point

Builds a persistent graph of a project's symbols and relationships
and answers callers, callees, impact and context queries over it.
"""

from codegraph.cli import main

if __name__ == "__main__":
    main()
