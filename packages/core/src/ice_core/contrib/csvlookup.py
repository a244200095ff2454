"""csv_lookup: assign owners by extracting a key from file content and looking it up in a CSV.

Typical use: every Terraform module carries an ``# owner-team: platform``
style header; a CSV maintained by the CMDB maps team keys to GitHub handles.

Config keys (all strings):
  csv_file      path to the CSV (first row is a header)
  key_regex     regex with one capture group, searched in each file's content
  key_column    zero-based CSV column holding the key
  value_column  zero-based CSV column holding the assignee
  repo_root     directory file paths are relative to (default ".")
"""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path

from ice_core.models import AssignmentOutcome, FileRecord
from ice_core.plugins import ASSIGNMENT, AssignmentPlugin, register_plugin

logger = logging.getLogger(__name__)


@register_plugin("csv_lookup", ASSIGNMENT)
class CSVLookupPlugin(AssignmentPlugin):
    def __init__(self):
        self.csv_file = ""
        self.key_regex: re.Pattern | None = None
        self.key_column = 0
        self.value_column = 0
        self.repo_root = Path(".")
        self.data: dict[str, str] = {}

    def init(self, config: dict[str, str]) -> None:
        for required in ("csv_file", "key_regex", "key_column", "value_column"):
            if not config.get(required):
                raise ValueError(f"{required} is required")
        self.csv_file = config["csv_file"]
        try:
            self.key_regex = re.compile(config["key_regex"])
        except re.error as e:
            raise ValueError(f"invalid key_regex: {e}") from e
        self.key_column = int(config["key_column"])
        self.value_column = int(config["value_column"])
        self.repo_root = Path(config.get("repo_root") or ".")
        self._load_csv()

    def resolve(self, files: list[FileRecord]) -> AssignmentOutcome:
        key = self._extract_key(files)
        if not key:
            logger.warning("csv_lookup: no key found in %d file(s)", len(files))
            return AssignmentOutcome()
        value = self.data.get(key)
        if value is None:
            logger.warning("csv_lookup: key %r not found in %s", key, self.csv_file)
            return AssignmentOutcome()
        return AssignmentOutcome(assignees=[value])

    def _extract_key(self, files: list[FileRecord]) -> str:
        for file in files:
            try:
                content = (self.repo_root / file.path).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                logger.warning("csv_lookup: could not read %s: %s", file.path, e)
                continue
            match = self.key_regex.search(content)
            if match and match.groups():
                return match.group(1)
        return ""

    def _load_csv(self) -> None:
        with open(self.csv_file, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        if not rows:
            raise ValueError("CSV file is empty")
        header = rows[0]
        for label, column in (("key_column", self.key_column), ("value_column", self.value_column)):
            if column >= len(header):
                raise ValueError(f"{label} {column} is out of range (header has {len(header)} columns)")

        for row in rows[1:]:
            if self.key_column >= len(row) or self.value_column >= len(row):
                continue  # malformed row
            key = row[self.key_column].strip()
            value = row[self.value_column].strip()
            if key and value:
                self.data[key] = value

        if not self.data:
            raise ValueError("no valid key-value pairs found in CSV")
        logger.info("csv_lookup: loaded %d entries from %s", len(self.data), self.csv_file)
