"""
Exceptions raised by the ASV calling pipeline.

PairingError is fatal for the run it occurs in. DenoiseError and its
subclasses are isolated to the sample being processed.
"""


class PipelineError(Exception):
    """Base class for ASV pipeline errors."""
    pass


class PairingError(PipelineError):
    """Raised when forward and reverse FASTQ files cannot be paired."""
    pass


class ConfigError(PipelineError):
    """Raised when a pipeline configuration file is invalid."""
    pass


class DenoiseError(PipelineError):
    """Raised when denoising a single sample fails."""
    pass


class MergeFailure(DenoiseError):
    """Raised when no forward/reverse variant pair of a sample overlaps."""
    pass
