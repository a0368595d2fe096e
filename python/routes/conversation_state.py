from typing import TypedDict, Dict, Any

from langchain_core.runnables import RunnableConfig, RunnableLambda
from langgraph.graph import StateGraph, END

from reconcile.conversation import new_conversation, now_ms
from reconcile.session import Session


class GraphState(TypedDict, total=False):
    payload: Dict[str, Any]
    response: Dict[str, Any]


def _session(config: RunnableConfig) -> Session:
    return config["configurable"]["session"]


def _get_compute(_: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    conversation = _session(config).conversation
    if conversation is None:
        return {"success": True, "state": None, "message": "No active conversation"}
    return {"success": True, "state": conversation.model_dump()}


def _post_compute(payload: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    session = _session(config)
    action = payload.get("action")
    data = payload.get("data")
    try:
        if action == "reset":
            session.conversation = new_conversation()
            print("[conversation-state] Reset conversation state")
            return {"success": True, "message": "Conversation state reset", "state": session.conversation.model_dump()}

        conversation = session.conversation
        if action == "clear-old":
            if conversation is None:
                return {"success": False, "error": "No active conversation to clear", "status": 400}
            ctx = conversation.context
            ctx.messages = ctx.messages[-5:]
            ctx.edits = ctx.edits[-3:]
            ctx.projectEvolution.majorChanges = ctx.projectEvolution.majorChanges[-2:]
            print("[conversation-state] Cleared old conversation data")
            return {"success": True, "message": "Old conversation data cleared", "state": conversation.model_dump()}

        if action == "update":
            if conversation is None:
                return {"success": False, "error": "No active conversation to update", "status": 400}
            if data:
                if "currentTopic" in data:
                    conversation.context.currentTopic = data["currentTopic"]
                if "userPreferences" in data:
                    conversation.context.userPreferences = {
                        **conversation.context.userPreferences,
                        **data["userPreferences"],
                    }
                if "message" in data:
                    conversation.context.messages.append(data["message"])
                conversation.lastUpdated = now_ms()
            return {"success": True, "message": "Conversation state updated", "state": conversation.model_dump()}

        return {"success": False, "error": 'Invalid action. Use "reset", "clear-old" or "update"', "status": 400}

    except Exception as e:
        print("[conversation-state] Error:", e)
        return {"success": False, "error": str(e), "status": 500}


def _delete_compute(_: Dict[str, Any], config: RunnableConfig) -> Dict[str, Any]:
    _session(config).conversation = None
    print("[conversation-state] Cleared conversation state")
    return {"success": True, "message": "Conversation state cleared"}


def _compile(processor: RunnableLambda):
    def _node(state: GraphState, config: RunnableConfig) -> GraphState:
        return {"response": processor.invoke(state.get("payload", {}), config=config)}

    sg = StateGraph(GraphState)
    sg.add_node("process", _node)
    sg.set_entry_point("process")
    sg.add_edge("process", END)
    return sg.compile()


_get_graph = _compile(RunnableLambda(_get_compute))
_post_graph = _compile(RunnableLambda(_post_compute))
_delete_graph = _compile(RunnableLambda(_delete_compute))


def _run(graph, session: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    result = graph.invoke({"payload": payload}, config={"configurable": {"session": session}})
    return result["response"]


def GET(session: Session) -> Dict[str, Any]:
    return _run(_get_graph, session, {})


def POST(body: Dict[str, Any], session: Session) -> Dict[str, Any]:
    return _run(_post_graph, session, body or {})


def DELETE(session: Session) -> Dict[str, Any]:
    return _run(_delete_graph, session, {})
