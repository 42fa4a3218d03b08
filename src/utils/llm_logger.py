"""LLM interaction logger for debugging and auditing."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Any, Dict, Optional


class LLMLogger:
    """Writes one JSON line per agent completion (or failure) to a daily file."""

    def __init__(self, log_dir: Optional[str] = None):
        """Initialize LLM logger.

        Args:
            log_dir: Directory to store log files, defaults to settings.log_dir
        """
        if log_dir is None:
            from src.api.config import settings

            log_dir = settings.log_dir
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger("llm_interactions")
        self.logger.setLevel(logging.DEBUG)

        # Prevent duplicate handlers
        if not self.logger.handlers:
            log_file = self.log_dir / f"llm_interactions_{datetime.now().strftime('%Y%m%d')}.log"
            fh = logging.FileHandler(log_file, encoding='utf-8')
            fh.setLevel(logging.DEBUG)
            fh.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(fh)
            # Console output goes through the root handlers configured by setup_logging().

    @staticmethod
    def _message_dict(msg: Any) -> Dict[str, Any]:
        return {
            "type": msg.__class__.__name__,
            "role": getattr(msg, 'type', 'unknown'),
            "content": getattr(msg, 'content', str(msg)),
        }

    def _write(self, level: int, entry: Dict[str, Any]) -> None:
        self.logger.log(level, json.dumps(entry, ensure_ascii=False, default=str))

    def log_interaction(
        self,
        session_id: str,
        messages_sent: List[Any],
        response_received: Any,
        model: str = "unknown",
        extra_params: Optional[Dict[str, Any]] = None
    ) -> None:
        """Log a completed agent turn.

        Args:
            session_id: Workflow session identifier
            messages_sent: LangChain messages sent to the model
            response_received: Aggregated response message
            model: Model name used
            extra_params: Additional parameters (agent name, temperature, etc.)
        """
        content = getattr(response_received, 'content', '') or ''
        entry = {
            "timestamp": datetime.now().isoformat(),
            "type": "INTERACTION",
            "session_id": session_id,
            "model": model,
            "request": {
                "message_count": len(messages_sent),
                "messages": [self._message_dict(msg) for msg in messages_sent],
            },
            "response": {
                "chars": len(content),
                "content": content,
            },
        }
        if extra_params:
            entry["extra_params"] = extra_params
        self._write(logging.DEBUG, entry)

        self.logger.info(
            "LLM Call | Session: %s... | Sent: %s msgs | Received: %s chars",
            session_id[:8],
            len(messages_sent),
            len(content),
        )

    def log_error(self, session_id: str, error: Exception, context: str = "") -> None:
        """Log a failed or interrupted completion.

        Args:
            session_id: Workflow session identifier
            error: Exception that occurred
            context: Additional context about the error
        """
        self._write(
            logging.ERROR,
            {
                "timestamp": datetime.now().isoformat(),
                "type": "ERROR",
                "session_id": session_id,
                "error": {
                    "type": error.__class__.__name__,
                    "message": str(error),
                    "context": context,
                },
            },
        )


# Global logger instance
_llm_logger = None


def get_llm_logger() -> LLMLogger:
    """Get or create the global LLM logger instance.

    Returns:
        LLMLogger instance
    """
    global _llm_logger
    if _llm_logger is None:
        _llm_logger = LLMLogger()
    return _llm_logger
