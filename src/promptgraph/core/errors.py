"""promptgraph.core.errors

Exception types raised by the compiler and the submission queue.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class PromptGraphError(Exception):
    """Base class for promptgraph errors."""


class WorkflowDocumentError(PromptGraphError, ValueError):
    """Raised when a workflow document cannot be parsed or migrated.

    `location` is a best-effort path into the document (e.g. `nodes[3].inputs[1]`).
    `extension` names a registered extension whose code appears in the traceback.
    """

    def __init__(self, message: str, *, location: Optional[str] = None, extension: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.location = location
        self.extension = extension

    def __str__(self) -> str:
        parts = [self.message]
        if self.location:
            parts.append(f"at {self.location}")
        if self.extension:
            parts.append(f"(this may be due to the extension '{self.extension}')")
        return " ".join(parts)


class GroupNodeError(WorkflowDocumentError):
    """Raised when an embedded group node definition is invalid or recursive."""


class ExtensionError(PromptGraphError):
    """Raised when an extension cannot be registered."""


class PromptRejectedError(PromptGraphError):
    """Raised when the execution engine rejects a submitted prompt.

    `node_errors` maps node id -> {"class_type": ..., "errors": [{"message", "details"}]}.
    """

    def __init__(
        self,
        message: str,
        *,
        details: str = "",
        node_errors: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.node_errors: Dict[str, Any] = dict(node_errors or {})

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "PromptRejectedError":
        error = response.get("error")
        if isinstance(error, dict):
            message = str(error.get("message") or "Prompt rejected")
            details = str(error.get("details") or "")
        else:
            message = str(error or "Prompt rejected")
            details = ""
        node_errors = response.get("node_errors")
        return cls(message, details=details, node_errors=node_errors if isinstance(node_errors, dict) else None)

    def node_error_list(self) -> List[Dict[str, Any]]:
        """Flatten `node_errors` to one entry per (node, error)."""
        out: List[Dict[str, Any]] = []
        for node_id, node_error in self.node_errors.items():
            if not isinstance(node_error, dict):
                continue
            class_type = node_error.get("class_type")
            for err in node_error.get("errors") or []:
                if not isinstance(err, dict):
                    continue
                out.append(
                    {
                        "node_id": str(node_id),
                        "class_type": class_type,
                        "message": err.get("message"),
                        "details": err.get("details"),
                    }
                )
        return out

    def __str__(self) -> str:
        text = self.message
        if self.details:
            text += ": " + self.details
        for node_id, node_error in self.node_errors.items():
            if not isinstance(node_error, dict):
                continue
            text += "\n" + str(node_error.get("class_type") or node_id) + ":"
            for err in node_error.get("errors") or []:
                if isinstance(err, dict):
                    text += f"\n    - {err.get('message')}: {err.get('details')}"
        return text
