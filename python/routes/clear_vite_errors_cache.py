from typing import TypedDict, Dict, Any

from langchain_core.runnables import RunnableConfig, RunnableLambda
from langgraph.graph import StateGraph, END

from reconcile.session import Session


class GraphState(TypedDict, total=False):
    payload: Dict[str, Any]
    response: Dict[str, Any]


def _compute(_: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    session: Session = config["configurable"]["session"]
    cleared = len(session.vite_errors)
    session.vite_errors.clear()
    print(f"[clear-vite-errors-cache] Cleared {cleared} errors")
    return {"success": True, "message": "Vite errors cache cleared", "cleared": cleared}


_processor = RunnableLambda(_compute)


def _node(state: GraphState, config: RunnableConfig) -> GraphState:
    return {"response": _processor.invoke(state.get("payload", {}), config=config)}


_sg = StateGraph(GraphState)
_sg.add_node("process", _node)
_sg.set_entry_point("process")
_sg.add_edge("process", END)
_graph = _sg.compile()


def POST(session: Session) -> Dict[str, Any]:
    try:
        result = _graph.invoke({"payload": {}}, config={"configurable": {"session": session}})
        return result["response"]
    except Exception as e:
        print("[clear-vite-errors-cache] Error:", e)
        return {"success": False, "error": str(e), "status": 500}
