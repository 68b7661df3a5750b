"""
Kaleidoscope Command-Line Interface
===================================

This package provides the command-line tool for the Kaleidoscope front end:

- **kalc**: lex, parse, check or run a Kaleidoscope source file

The tool is a Click-based CLI application with help and error reporting.
"""

__all__ = ["kalc"]
