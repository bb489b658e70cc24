#!/usr/bin/env python3
"""
Main execution module for the Stream Chat to ChatSDK migration tool
"""

from chatsdk_migrator.cli.commands import main

if __name__ == "__main__":
    main()
