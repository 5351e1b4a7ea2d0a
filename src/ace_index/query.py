"""Codebase retrieval and prompt enhancement against the indexed blob set."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ace_index.index.models import IndexResult, ProgressReporter, report
from ace_index.index.store import IndexStoreRepository
from ace_index.remote.client import RemoteClient
from ace_index.remote.retry import DEFAULT_MAX_ATTEMPTS, with_retry
from ace_index.remote.stream import EnhancedPromptParser, PromptExtractionError

logger = logging.getLogger(__name__)

NO_RESULTS_MESSAGE = "No relevant code context found for your query."
QUERY_RETRY_BASE_DELAY = 2.0
TEXT_NODE_TYPE = 0
IDE_STATE_NODE_TYPE = 4

ENHANCEMENT_INSTRUCTION = """⚠️ NO TOOLS ALLOWED ⚠️

Here is an instruction that I'd like to give you, but it needs to be improved. \
Rewrite and enhance this instruction to make it clearer, more specific, less ambiguous, \
and correct any mistakes. Do not use any tools: reply immediately with your answer, \
even if you're not sure. Consider the context of our conversation history when enhancing \
the prompt. If there is code in triple backticks (```) consider whether it is a code \
sample and should remain unchanged.

Reply with the following format:

### BEGIN RESPONSE ###
Here is an enhanced version of the original instruction that is more specific and clear:
<augment-enhanced-prompt>enhanced prompt goes here</augment-enhanced-prompt>

### END RESPONSE ###

Here is my original instruction:

{query}"""

Bootstrap = Callable[[ProgressReporter | None], IndexResult | None]


class IndexBootstrapError(Exception):
    """Raised when a query needs an index and the project could not be indexed."""


@dataclass(slots=True, frozen=True)
class EditorContext:
    """Optional editor state sent along with a prompt enhancement request."""

    path: str | None = None
    prefix: str | None = None
    selected_code: str | None = None
    suffix: str | None = None
    language: str | None = None


def build_enhancement_payload(
    query: str,
    blob_names: list[str],
    project_root: Path,
    user_guidelines: str = "",
    editor: EditorContext | None = None,
) -> dict[str, object]:
    """Build the chat-stream request body for one enhancement."""
    context = editor or EditorContext()
    root = str(project_root)
    return {
        "model": None,
        "path": context.path or None,
        "prefix": context.prefix or None,
        "selected_code": context.selected_code or None,
        "suffix": context.suffix or None,
        "message": "",
        "chat_history": [],
        "lang": context.language or None,
        "blobs": {
            "checkpoint_id": None,
            "added_blobs": blob_names,
            "deleted_blobs": [],
        },
        "user_guided_blobs": [],
        "context_code_exchange_request_id": None,
        "external_source_ids": [],
        "disable_auto_external_sources": None,
        "user_guidelines": user_guidelines,
        "workspace_guidelines": "",
        "feature_detection_flags": {
            "support_tool_use_start": True,
            "support_parallel_tool_use": True,
        },
        "tool_definitions": [],
        "nodes": [
            {
                "id": 1,
                "type": TEXT_NODE_TYPE,
                "text_node": {"content": ENHANCEMENT_INSTRUCTION.format(query=query)},
            },
            {
                "id": 2,
                "type": IDE_STATE_NODE_TYPE,
                "ide_state_node": {
                    "workspace_folders": [{"folder_root": root, "repository_root": root}],
                    "workspace_folders_unchanged": False,
                    "current_terminal": {"terminal_id": 0, "current_working_directory": root},
                },
            },
        ],
        "mode": "AGENT",
        "agent_memories": "",
        "persona_type": 0,
        "rules": [],
        "silent": True,
        "third_party_override": None,
        "conversation_id": "__NEW_AGENT__",
    }


class QueryService:
    """Answers queries against the committed digest set, indexing first when empty."""

    def __init__(
        self,
        project_root: Path,
        store: IndexStoreRepository,
        client: RemoteClient,
        bootstrap: Bootstrap,
        user_guidelines: str = "",
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = QUERY_RETRY_BASE_DELAY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._project_root = project_root
        self._store = store
        self._client = client
        self._bootstrap = bootstrap
        self._user_guidelines = user_guidelines
        self._max_attempts = max_attempts
        self._base_delay = base_delay
        self._sleep = sleep

    def search(self, query: str, reporter: ProgressReporter | None = None) -> str:
        """Return formatted code context relevant to query."""
        blob_names = self._ensure_blob_names(reporter)
        report(reporter, "searching", "Searching codebase...", 50)
        try:
            formatted = with_retry(
                lambda: self._client.codebase_retrieval(query, blob_names),
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                sleep=self._sleep,
            )
        except Exception as error:
            report(reporter, "error", str(error), 100)
            raise
        if not formatted:
            logger.info("No relevant code context found")
            report(reporter, "complete", "Search complete", 100)
            return NO_RESULTS_MESSAGE
        report(reporter, "complete", "Search complete", 100)
        return formatted

    def enhance_prompt(
        self,
        query: str,
        editor: EditorContext | None = None,
        reporter: ProgressReporter | None = None,
    ) -> str:
        """Rewrite query into a clearer prompt using the indexed codebase as context."""
        blob_names = self._ensure_blob_names(reporter)
        report(reporter, "enhancing", "Enhancing query...", 50)
        payload = build_enhancement_payload(
            query,
            blob_names,
            self._project_root,
            user_guidelines=self._user_guidelines,
            editor=editor,
        )
        headers = {
            "x-request-id": str(uuid.uuid4()),
            "x-request-session-id": str(uuid.uuid4()),
        }

        def request() -> str:
            with self._client.chat_stream(payload, headers) as lines:
                return EnhancedPromptParser().feed(lines)

        try:
            enhanced = with_retry(
                request,
                max_attempts=self._max_attempts,
                base_delay=self._base_delay,
                sleep=self._sleep,
            )
        except Exception as error:
            report(reporter, "error", str(error), 100)
            raise
        if not enhanced:
            raise PromptExtractionError("Enhanced prompt was empty.")
        report(reporter, "complete", "Enhancement complete", 100)
        return enhanced

    def _ensure_blob_names(self, reporter: ProgressReporter | None) -> list[str]:
        store = self._store.load()
        if store.is_empty:
            result = self._bootstrap(reporter)
            if result is None:
                raise IndexBootstrapError("Failed to index project. Another index run is active.")
            if result.status == "error":
                logger.error("Index failed: %s", result.message)
                raise IndexBootstrapError(f"Failed to index project. {result.message}")
            store = self._store.load()
        if store.is_empty:
            raise IndexBootstrapError("No blobs found after indexing.")
        return sorted(store.blob_names)
