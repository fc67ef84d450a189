"""
Source Relationship Analysis

Lightweight text-scanning analyzer for JavaScript/TypeScript files and the
dependency graph assembled from its output.
"""

from src.analysis.analyzer import analyze_file, analyze_source, is_source_file
from src.analysis.graph import DependencyGraph, build_dependency_graph

__all__ = [
    "DependencyGraph",
    "analyze_file",
    "analyze_source",
    "build_dependency_graph",
    "is_source_file",
]
