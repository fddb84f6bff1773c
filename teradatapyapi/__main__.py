"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
Entry point for python -m teradatapyapi.
"""

from teradatapyapi.cli import main

if __name__ == "__main__":
    main()
