"""Render stored snapshots in portable formats."""

import csv
import io
import json
import xml.etree.ElementTree as ET
from enum import Enum
from typing import Any, Iterator

from ausmo.errors import ConfigurationError

from .capture import SnapshotDocument


class ExportFormat(str, Enum):
    JSON = "json"
    CSV = "csv"
    XML = "xml"
    PDF = "pdf"


def _rows(document: SnapshotDocument) -> Iterator[tuple[str, str, str]]:
    for domain, payload in sorted(document.data.items()):
        if isinstance(payload, dict):
            items = ((str(k), v) for k, v in sorted(payload.items(), key=lambda kv: str(kv[0])))
        elif isinstance(payload, list):
            items = ((str(i), v) for i, v in enumerate(payload))
        else:
            items = iter([("", payload)])
        for key, value in items:
            yield domain, key, json.dumps(value, sort_keys=True, default=str)


def _to_xml(parent: ET.Element, value: Any) -> None:
    if isinstance(value, dict):
        for key, child in value.items():
            node = ET.SubElement(parent, "field", name=str(key))
            _to_xml(node, child)
    elif isinstance(value, list):
        for child in value:
            _to_xml(ET.SubElement(parent, "item"), child)
    elif value is not None:
        parent.text = str(value)


class SnapshotExporter:
    """Serializes a snapshot document as JSON, CSV or XML."""

    def render(self, document: SnapshotDocument, fmt: str) -> str:
        try:
            export_format = ExportFormat(str(fmt).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown export format '{fmt}'", field="format") from None

        if export_format == ExportFormat.JSON:
            return json.dumps(document.to_dict(), indent=2, sort_keys=True, default=str)
        if export_format == ExportFormat.CSV:
            return self._render_csv(document)
        if export_format == ExportFormat.XML:
            return self._render_xml(document)
        raise ConfigurationError("PDF export is not supported", field="format")

    @staticmethod
    def _render_csv(document: SnapshotDocument) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(["domain", "key", "value"])
        writer.writerows(_rows(document))
        return buffer.getvalue()

    @staticmethod
    def _render_xml(document: SnapshotDocument) -> str:
        root = ET.Element("backup", timestamp=document.timestamp, version=document.version)
        for domain, payload in sorted(document.data.items()):
            _to_xml(ET.SubElement(root, "domain", name=domain), payload)
        return ET.tostring(root, encoding="unicode")
