"""
tcount Plotting Package (Functional Core)

Pure plotting functions only – no SQL, no file I/O, no side effects.
Every public function accepts DataFrames / dicts and returns a
``plotly.graph_objects.Figure``.

Modules:
    distributions: Vehicle class and speed range bar charts per direction.
"""

from .distributions import plot_class_distribution, plot_speed_distribution

__all__ = [
    'plot_class_distribution',
    'plot_speed_distribution',
]
