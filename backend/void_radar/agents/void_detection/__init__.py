# Void detection stages
from .snapshot_builder import build_ecosystem_context
from .signals import gather_external_signals
from .synthesizer import SynthesisError, synthesize_gaps
from .skeptic import verify_candidates
from .pipeline import run_void_detection

__all__ = [
    "build_ecosystem_context",
    "gather_external_signals",
    "SynthesisError",
    "synthesize_gaps",
    "verify_candidates",
    "run_void_detection",
]
