"""HTTP surface: the agent and execution boundaries plus in-memory conversations.

Created: 2026-10-05
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from pookal import __version__
from pookal.agents.assistant import SafetyAgent
from pookal.agents.conversation import Conversation
from pookal.agents.personas import list_personas
from pookal.config import Settings
from pookal.errors import ProposalNotFoundError
from pookal.llm.client import LLMClient, resolve_llm_client
from pookal.tools.capabilities.registry import CapabilityRegistry, build_default_registry

logger = logging.getLogger(__name__)


class ChatMessage(BaseModel):
    role: str
    content: str


class AgentRequest(BaseModel):
    messages: list[ChatMessage] = Field(default_factory=list)
    persona: str | None = None


class ExecuteRequest(BaseModel):
    tool: str
    args: Any = None


class ConversationCreate(BaseModel):
    persona: str | None = None


class UserTurn(BaseModel):
    content: str = Field(min_length=1)


class ConfirmRequest(BaseModel):
    overrides: dict[str, Any] = Field(default_factory=dict)


class OverrideRequest(BaseModel):
    overrides: dict[str, Any] = Field(min_length=1)


def create_app(
    settings: Settings,
    registry: CapabilityRegistry | None = None,
    llm: LLMClient | None = None,
) -> FastAPI:
    """Build the API app; ``registry`` and ``llm`` are injectable for tests."""
    registry = registry or build_default_registry(settings)
    llm = llm or resolve_llm_client(settings)
    agent = SafetyAgent(llm, registry, temperature=settings.agent_temperature)
    conversations: dict[str, Conversation] = {}

    app = FastAPI(title="Pookal", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.registry = registry
    app.state.conversations = conversations

    def _conversation(conversation_id: str) -> Conversation:
        conversation = conversations.get(conversation_id)
        if conversation is None:
            raise HTTPException(status_code=404, detail=f"Unknown conversation: {conversation_id}")
        return conversation

    @app.get("/api/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "provider": llm.provider, "model": llm.model}

    @app.get("/api/capabilities")
    async def capabilities() -> list[dict[str, str]]:
        return registry.list_capabilities()

    @app.get("/api/personas")
    async def personas() -> list[dict[str, str]]:
        return list_personas()

    @app.post("/api/agent")
    async def agent_turn(req: AgentRequest) -> dict[str, Any]:
        intent = await agent.run_turn([m.model_dump() for m in req.messages], req.persona)
        return intent.to_dict()

    @app.post("/api/tools/execute")
    async def execute(req: ExecuteRequest) -> dict[str, Any]:
        result = await registry.invoke(req.tool, req.args)
        return result.to_dict()

    @app.post("/api/conversations")
    async def create_conversation(req: ConversationCreate | None = None) -> dict[str, Any]:
        conversation = Conversation(
            llm,
            registry,
            persona=(req.persona if req else None) or settings.persona,
            auto_consent=settings.auto_consent_enabled,
            temperature=settings.agent_temperature,
        )
        conversations[conversation.id] = conversation
        logger.info("Conversation %s started", conversation.id)
        return conversation.to_dict()

    @app.get("/api/conversations/{conversation_id}")
    async def get_conversation(conversation_id: str) -> dict[str, Any]:
        return _conversation(conversation_id).to_dict()

    @app.post("/api/conversations/{conversation_id}/messages")
    async def post_message(conversation_id: str, req: UserTurn) -> dict[str, Any]:
        turn = await _conversation(conversation_id).handle_user_text(req.content)
        return turn.to_dict()

    @app.post("/api/conversations/{conversation_id}/proposals/{proposal_id}/confirm")
    async def confirm_proposal(
        conversation_id: str, proposal_id: str, req: ConfirmRequest | None = None
    ) -> dict[str, Any]:
        conversation = _conversation(conversation_id)
        try:
            outcome = await conversation.confirm(proposal_id, req.overrides if req else None)
        except ProposalNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"executed": outcome.executed, "proposal": outcome.proposal.to_dict()}

    @app.post("/api/conversations/{conversation_id}/proposals/{proposal_id}/decline")
    async def decline_proposal(conversation_id: str, proposal_id: str) -> dict[str, Any]:
        conversation = _conversation(conversation_id)
        try:
            declined = await conversation.decline(proposal_id)
        except ProposalNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"declined": declined, "proposal": conversation.proposals.get(proposal_id).to_dict()}

    @app.put("/api/conversations/{conversation_id}/proposals/{proposal_id}/overrides")
    async def override_proposal(conversation_id: str, proposal_id: str, req: OverrideRequest) -> dict[str, Any]:
        conversation = _conversation(conversation_id)
        try:
            for field_name, value in req.overrides.items():
                if not conversation.set_override(proposal_id, field_name, value):
                    raise HTTPException(status_code=409, detail=f"Proposal {proposal_id} is already resolved")
            overrides = conversation.proposals.overrides(proposal_id)
        except ProposalNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"proposal": conversation.proposals.get(proposal_id).to_dict(), "overrides": overrides}

    return app
