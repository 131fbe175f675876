"""
Model backends for Tandem.

This package provides the model adapters, the tool-call extraction they
share, capability heuristics and retry handling for backend requests.
"""
