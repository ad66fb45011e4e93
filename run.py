#!/usr/bin/env python3
"""Backup runner (same as the 'wikibackup' command)"""
import sys
from wikibackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
