from .compiler import EzfuckSyntaxError, compile_source
from .debugger import DebugView, Debugger
from .interpreter import EzfuckInterpreter, ExecutionState, PointerUnderflow, Snapshot, StepLimitExceeded
from .repl import ReplSession
from .visualizer import VisualizerSession

__all__ = [
    "DebugView",
    "Debugger",
    "EzfuckInterpreter",
    "EzfuckSyntaxError",
    "ExecutionState",
    "PointerUnderflow",
    "ReplSession",
    "Snapshot",
    "StepLimitExceeded",
    "VisualizerSession",
    "compile_source",
]
