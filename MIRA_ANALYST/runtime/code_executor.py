"""Code execution harness backed by an isolated E2B sandbox."""
from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from e2b_code_interpreter import AsyncSandbox

from MIRA_ANALYST.runtime.errors import SandboxSetupTimeout, SandboxUnavailable, UploadFailed

logger = logging.getLogger(__name__)

SandboxCreator = Callable[..., Awaitable[Any]]

_IMAGE_FORMATS = (("png", "image/png"), ("jpeg", "image/jpeg"))


@dataclass
class Artifact:
    """One chart image captured from sandbox output."""

    data: bytes
    mime_type: str = "image/png"


@dataclass
class ExecutionResult:
    """Represents the outcome of one code submission."""

    status: str  # "success" or "error"
    stdout: str = ""
    stderr: str = ""
    text_results: List[str] = field(default_factory=list)
    error_name: Optional[str] = None
    error_value: Optional[str] = None
    traceback: Optional[str] = None
    artifacts: List[Artifact] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == "success"

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts)


def _decode_artifacts(results: Any) -> List[Artifact]:
    artifacts: List[Artifact] = []
    for result in results or []:
        for attr, mime_type in _IMAGE_FORMATS:
            encoded = getattr(result, attr, None)
            if not encoded:
                continue
            try:
                artifacts.append(Artifact(data=base64.b64decode(encoded), mime_type=mime_type))
            except (binascii.Error, ValueError):
                logger.warning("Discarding undecodable %s output from sandbox", attr)
            break
    return artifacts


class SandboxExecutor:
    """Owns the lifecycle of one E2B sandbox for a single analysis run."""

    def __init__(
        self,
        api_key: str,
        template: Optional[str] = None,
        sandbox_timeout: int = 300,
        request_timeout: float = 45.0,
        setup_timeout: float = 30.0,
        create: Optional[SandboxCreator] = None,
    ) -> None:
        self.api_key = api_key
        self.template = template
        self.sandbox_timeout = sandbox_timeout
        self.request_timeout = request_timeout
        self.setup_timeout = setup_timeout
        self._create = create or AsyncSandbox.create
        self._sandbox: Any = None

    @property
    def sandbox_id(self) -> Optional[str]:
        return getattr(self._sandbox, "sandbox_id", None)

    @property
    def is_open(self) -> bool:
        return self._sandbox is not None

    async def open(self) -> str:
        """Create the sandbox, bounded by the client-side setup timeout."""
        if self._sandbox is not None:
            raise RuntimeError("Sandbox already open for this executor")

        logger.info("Requesting code-interpreter sandbox (template: %s)", self.template or "default")
        kwargs: dict[str, Any] = {
            "api_key": self.api_key,
            "timeout": self.sandbox_timeout,
            "request_timeout": self.request_timeout,
        }
        if self.template:
            kwargs["template"] = self.template

        loop = asyncio.get_running_loop()
        started_at = loop.time()
        try:
            self._sandbox = await asyncio.wait_for(self._create(**kwargs), timeout=self.setup_timeout)
        except asyncio.TimeoutError as exc:
            raise SandboxSetupTimeout(
                f"Sandbox creation timed out locally after {self.setup_timeout:g}s"
            ) from exc
        except Exception as exc:  # pylint: disable=broad-except
            raise SandboxUnavailable(f"Could not create sandbox: {exc}") from exc

        logger.info("Sandbox ready in %.1fs (id: %s)", loop.time() - started_at, self.sandbox_id)
        return self.sandbox_id or ""

    async def upload(self, data: bytes, path: str) -> None:
        sandbox = self._require_sandbox()
        logger.info("Uploading %d bytes to %s", len(data), path)
        try:
            await sandbox.files.write(path, data)
        except Exception as exc:  # pylint: disable=broad-except
            raise UploadFailed(f"Could not upload dataset to {path}: {exc}") from exc

    async def execute(self, code: str) -> ExecutionResult:
        """Run one code cell. Errors raised by the code are returned, not raised."""
        sandbox = self._require_sandbox()
        execution = await sandbox.run_code(code)

        logs = getattr(execution, "logs", None)
        stdout = "".join(getattr(logs, "stdout", None) or [])
        stderr = "".join(getattr(logs, "stderr", None) or [])
        results = getattr(execution, "results", None) or []
        text_results = [str(r.text) for r in results if getattr(r, "text", None)]
        artifacts = _decode_artifacts(results)

        error = getattr(execution, "error", None)
        if error is not None:
            return ExecutionResult(
                status="error",
                stdout=stdout,
                stderr=stderr,
                text_results=text_results,
                error_name=getattr(error, "name", None) or "Error",
                error_value=str(getattr(error, "value", "") or ""),
                traceback=str(getattr(error, "traceback", "") or ""),
                artifacts=artifacts,
            )
        return ExecutionResult(
            status="success",
            stdout=stdout,
            stderr=stderr,
            text_results=text_results,
            artifacts=artifacts,
        )

    async def close(self) -> None:
        """Kill the sandbox. Failures are logged and never raised."""
        sandbox, self._sandbox = self._sandbox, None
        if sandbox is None:
            return
        logger.info("Cleanup: killing sandbox %s", getattr(sandbox, "sandbox_id", "?"))
        try:
            await sandbox.kill()
        except Exception:  # pylint: disable=broad-except
            logger.warning("Sandbox cleanup failed", exc_info=True)

    def _require_sandbox(self) -> Any:
        if self._sandbox is None:
            raise RuntimeError("Sandbox is not open")
        return self._sandbox
