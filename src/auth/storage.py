"""认证模块数据存储层：同步的键值存储，用于保存会话令牌"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)


class CredentialStore(ABC):
    """凭证存储基类：同步读写，进程内唯一。

    子类实现 get / set / remove；set_many / remove_many 默认逐键执行，
    需要原子写入的子类应覆盖它们。
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """读取键值，不存在返回 None"""
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """写入键值，覆盖已有值"""
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """删除键，不存在时无操作"""
        ...

    def set_many(self, items: Mapping[str, str]) -> None:
        """批量写入"""
        for key, value in items.items():
            self.set(key, value)

    def remove_many(self, keys: Iterable[str]) -> None:
        """批量删除"""
        for key in keys:
            self.remove(key)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryCredentialStore(CredentialStore):
    """内存存储，进程退出即丢失；用于测试和临时会话"""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def set_many(self, items: Mapping[str, str]) -> None:
        self._data.update(items)


class FileCredentialStore(CredentialStore):
    """JSON 文件存储，跨进程重启保留。

    每次写入都生成完整的新文件再用 os.replace 替换，
    读取方只会看到替换前或替换后的完整内容。
    """

    def __init__(self, path: str = "data/credentials.json"):
        """指定存储文件路径，父目录不存在则创建"""
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._data: dict[str, str] = self._load()

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self.set_many({key: value})

    def remove(self, key: str) -> None:
        self.remove_many([key])

    def set_many(self, items: Mapping[str, str]) -> None:
        data = dict(self._data)
        data.update(items)
        self._write(data)

    def remove_many(self, keys: Iterable[str]) -> None:
        data = dict(self._data)
        changed = False
        for key in keys:
            if key in data:
                del data[key]
                changed = True
        if changed:
            self._write(data)

    def _load(self) -> dict[str, str]:
        """从文件读取全部键值；文件不存在返回空字典"""
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"凭证文件格式错误: {self.path}")
        logger.debug(f"[FileCredentialStore] 已加载 {len(data)} 个键: {self.path}")
        return {str(k): str(v) for k, v in data.items()}

    def _write(self, data: dict[str, str]) -> None:
        """写入临时文件后原子替换目标文件，成功后才更新内存副本"""
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".credentials-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self._data = data
