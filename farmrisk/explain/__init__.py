from .synthesizer import (
    CounterfactualProbe,
    ExplanationChain,
    ExplanationLayer,
    LayerGenerationFailure,
    OmittedLayer,
    factor_attribution,
    find_counterfactual,
    synthesize_explanation,
)
from .templates import LayerTemplate, TemplateRegistry

__all__ = [
    "CounterfactualProbe",
    "ExplanationChain",
    "ExplanationLayer",
    "LayerGenerationFailure",
    "LayerTemplate",
    "OmittedLayer",
    "TemplateRegistry",
    "factor_attribution",
    "find_counterfactual",
    "synthesize_explanation",
]
