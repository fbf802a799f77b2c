from .binary import BinaryProbe, ProbedImage

__all__ = [
    'BinaryProbe',
    'ProbedImage',
]
