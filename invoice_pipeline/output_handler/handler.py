"""
Main Output Handler Module.

This module provides the OutputHandler class that writes unified results
to JSON files.

Author: ML Engineering Team
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..utils.exceptions import OutputError
from ..utils.helpers import ensure_directory
from ..utils.logger import get_logger
from .unified_result import UnifiedResult

logger = get_logger(__name__)


class OutputHandler:
    """
    JSON export for pipeline results.

    Attributes:
        json_indent: Indentation of written files
        output_dir: Directory for relative output paths

    Example:
        >>> handler = OutputHandler()
        >>> handler.save_json(result, "outputs/invoice.json")
        PosixPath('outputs/invoice.json')
    """

    def __init__(self, json_indent: int = 2, output_dir: Optional[Union[str, Path]] = None) -> None:
        self.json_indent = json_indent
        self.output_dir = Path(output_dir) if output_dir else None

        logger.debug(f"OutputHandler initialized (indent={json_indent}, dir={self.output_dir})")

    def _resolve(self, filepath: Union[str, Path]) -> Path:
        path = Path(filepath)
        if self.output_dir is not None and not path.is_absolute():
            path = self.output_dir / path
        return path

    @staticmethod
    def to_payload(results: Union[UnifiedResult, List[UnifiedResult]]) -> Union[Dict[str, Any], List[Dict[str, Any]]]:
        if isinstance(results, UnifiedResult):
            return results.to_dict()
        return [r.to_dict() for r in results]

    def save_json(
        self,
        results: Union[UnifiedResult, List[UnifiedResult]],
        filepath: Union[str, Path]
    ) -> Path:
        """
        Write one result, or a list of results, as JSON.

        Args:
            results: Single result or list of results.
            filepath: Target file; parent directories are created.

        Returns:
            Path of the written file.

        Raises:
            OutputError: If the file cannot be written.
        """
        path = self._resolve(filepath)
        payload = self.to_payload(results)

        try:
            ensure_directory(path.parent)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=self.json_indent, default=str, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to write {path}: {e}")
            raise OutputError(str(path), str(e))

        count = 1 if isinstance(results, UnifiedResult) else len(results)
        logger.info(f"Saved {count} result(s) to {path}")
        return path
