"""LangGraph construction and node implementations.

Flow:
    build_context -> (confirmed_action) -> execute -> END
    build_context -> compile_protocol -> call_model -> classify -> (action) -> execute -> END
                                                               -> (answer / unsupported) -> END

Nodes raise BusinessError subclasses; the pipeline converts them into
conversational messages.
"""

from __future__ import annotations

from dataclasses import dataclass

from langgraph.graph import END, StateGraph
from langgraph.graph.state import CompiledStateGraph

from assistant_core.actions.executor import ActionExecutor
from assistant_core.assistant.classifier import Action, classify
from assistant_core.assistant.context_builder import ContextBuilder
from assistant_core.assistant.gateway import LLMGateway
from assistant_core.assistant.protocol import ProtocolCompiler, build_model_history
from assistant_core.flows.state import PipelineState
from assistant_core.infrastructure.logging.logger import logger


@dataclass
class PipelineComponents:
    context_builder: ContextBuilder
    compiler: ProtocolCompiler
    gateway: LLMGateway
    executor: ActionExecutor


def build_context_node(state: PipelineState, c: PipelineComponents) -> PipelineState:
    state["snapshot"] = c.context_builder.build(state["user_id"], trace_id=state.get("trace_id"))
    return state


def compile_protocol_node(state: PipelineState, c: PipelineComponents) -> PipelineState:
    state["system"] = c.compiler.compile(state["snapshot"])
    state["model_messages"] = build_model_history(
        state.get("history") or [],
        state["message"],
        attachment_name=state.get("attachment_name"),
    )
    logger.info(
        "compile_protocol.end",
        extra={"extra": {"trace_id": state.get("trace_id"), "messages": len(state["model_messages"])}},
    )
    return state


def call_model_node(state: PipelineState, c: PipelineComponents) -> PipelineState:
    state["raw_text"] = c.gateway.complete(state["system"], state["model_messages"], trace_id=state.get("trace_id"))
    return state


def classify_node(state: PipelineState) -> PipelineState:
    classification = classify(state["raw_text"], trace_id=state.get("trace_id"))
    state["classification"] = classification
    if isinstance(classification, Action):
        state["action"] = classification.request
    else:
        state["action"] = None
        state["result_text"] = classification.text
    logger.info(
        "classify.end",
        extra={"extra": {"trace_id": state.get("trace_id"), "kind": type(classification).__name__}},
    )
    return state


def execute_node(state: PipelineState, c: PipelineComponents) -> PipelineState:
    confirmed = state.get("confirmed_action")
    action = confirmed or state.get("action")
    result = c.executor.execute(
        action,
        state["snapshot"],
        state["user_id"],
        confirmed=confirmed is not None,
        trace_id=state.get("trace_id"),
    )
    state["result_text"] = result.message
    state["deep_link"] = result.deep_link
    state["affected"] = tuple(result.affected)
    state["pending_action"] = result.pending_action
    return state


def context_router(state: PipelineState) -> str:
    return "execute" if state.get("confirmed_action") is not None else "compile_protocol"


def classify_router(state: PipelineState) -> str:
    return "execute" if state.get("action") is not None else "end"


def build_graph(components: PipelineComponents) -> CompiledStateGraph:
    graph = StateGraph(PipelineState)
    graph.add_node("build_context", lambda s: build_context_node(s, components))
    graph.add_node("compile_protocol", lambda s: compile_protocol_node(s, components))
    graph.add_node("call_model", lambda s: call_model_node(s, components))
    graph.add_node("classify", classify_node)
    graph.add_node("execute", lambda s: execute_node(s, components))
    graph.set_entry_point("build_context")
    graph.add_conditional_edges(
        "build_context", context_router, {"execute": "execute", "compile_protocol": "compile_protocol"}
    )
    graph.add_edge("compile_protocol", "call_model")
    graph.add_edge("call_model", "classify")
    graph.add_conditional_edges("classify", classify_router, {"execute": "execute", "end": END})
    graph.add_edge("execute", END)
    return graph.compile()
