#!/usr/bin/env python3
"""
Docker Image Builder
Application entry point
"""

from imagebuilder.cli import run_cli


def main():
    """Main function"""
    run_cli()


if __name__ == "__main__":
    main()
