from .orchestrator import PipelineResult, PipelineState, RiskInterpretationOrchestrator

__all__ = ["PipelineResult", "PipelineState", "RiskInterpretationOrchestrator"]
