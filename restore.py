#!/usr/bin/env python3
"""
MySQL PITR Restore - Main Entry Point

This script is a wrapper for the restore system located in mysql_pitr/restore/
"""

import sys
from mysql_pitr.restore.__main__ import main

if __name__ == '__main__':
    sys.exit(main())
