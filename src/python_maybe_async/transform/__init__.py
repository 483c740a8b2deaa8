"""
The transformations applied to declarations carrying a directive.

The router walks a module and, for each such declaration, runs the suspension rewriter (and the dual-identity namer
for classes processed in both modes, or the harness specializer for tests). Results are gated variant groups which
`lower()` turns into the source of one build, or into guarded source holding every variant.
"""
from .gate import Always, FlagSet, InclusionGate, Not, VariantGroup, VariantOutput, lower  # noreorder
from .harness import HarnessSpecializer
from .naming import DualIdentityNamer
from .router import AnnotationRouter
from .suspension import SuspensionRewriter, find_suspension_markers

__all__ = [
    "Always",
    "FlagSet",
    "Not",
    "InclusionGate",
    "VariantGroup",
    "VariantOutput",
    "lower",
    "HarnessSpecializer",
    "DualIdentityNamer",
    "AnnotationRouter",
    "SuspensionRewriter",
    "find_suspension_markers",
]
