import json
import os
from pathlib import Path
from typing import Dict, List
from urllib.parse import quote
from uuid import uuid4

from chat_broker.config.settings import settings
from chat_broker.domain.exceptions import BusinessError, PersistedStateCorruptError
from chat_broker.domain.models import ConversationTurn, turns_to_payload
from chat_broker.domain.validation import validate_history
from chat_broker.infrastructure.logging.logger import logger


class JsonHistoryStore:
    """按模型保存对话历史，每个模型一个 JSON 文件。

    内存中的历史只由 Worker 修改；磁盘只由定时 flush_all 写入。
    """

    def __init__(self, root: str | Path | None = None, max_history: int | None = None):
        self._root = Path(root or settings.history_dir).resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._max_history = max_history or settings.max_history
        self._histories: Dict[str, List[ConversationTurn]] = {}

    @property
    def root(self) -> Path:
        return self._root

    def get(self, model_id: str) -> List[ConversationTurn]:
        """返回模型历史的快照，首次访问时从磁盘加载。"""
        return list(self._ensure(model_id))

    def loaded_models(self) -> List[str]:
        return list(self._histories)

    def trim(self, model_id: str, limit: int | None = None) -> int:
        """从最旧的一条开始裁剪到 limit 条，返回被丢弃的条数。"""
        history = self._ensure(model_id)
        limit = self._max_history if limit is None else max(limit, 0)
        overflow = len(history) - limit
        if overflow <= 0:
            return 0
        del history[:overflow]
        return overflow

    def append(self, model_id: str, turn: ConversationTurn) -> None:
        """追加一条消息，追加后长度不超过 max_history。"""
        history = self._ensure(model_id)
        self.trim(model_id, self._max_history - 1)
        history.append(turn)

    def flush_all(self) -> int:
        """把所有内存中的历史整体覆盖写回磁盘，返回成功写入的模型数。"""
        written = 0
        for model_id in list(self._histories):
            try:
                self._write(model_id, self._histories[model_id])
                written += 1
            except BusinessError as e:
                logger.error(f"Failed to save history for model {model_id}: {e.message}", extra={"extra": {
                    "model": model_id,
                    "code": e.code,
                }})
        return written

    def path_for(self, model_id: str) -> Path:
        return self._root / f"{quote(model_id, safe='')}.json"

    def _ensure(self, model_id: str) -> List[ConversationTurn]:
        history = self._histories.get(model_id)
        if history is None:
            history = self._load(model_id)
            self._histories[model_id] = history
        return history

    def _load(self, model_id: str) -> List[ConversationTurn]:
        path = self.path_for(model_id)
        if not path.exists():
            return []
        try:
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                raise PersistedStateCorruptError(code="HISTORY_CORRUPT", message=str(e), model=model_id)
            turns = validate_history(data)
            if turns is None:
                raise PersistedStateCorruptError(
                    code="HISTORY_CORRUPT",
                    message=f"Expected a list in {path.name}, got {type(data).__name__}",
                    model=model_id,
                )
        except PersistedStateCorruptError as e:
            logger.error(f"Discarding corrupt history for model {model_id}: {e.message}", extra={"extra": {
                "model": model_id,
                "path": str(path),
            }})
            return []
        logger.info(f"Loaded {len(turns)} messages for model {model_id}")
        return turns

    def _write(self, model_id: str, turns: List[ConversationTurn]) -> None:
        path = self.path_for(model_id)
        tmp_path = self._root / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(turns_to_payload(turns), ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise BusinessError(code="STORE_WRITE_ERROR", message=str(e))
