"""
Document metadata - attribute sets built from spreadsheet rows.

Attaching metadata is best-effort: the uploaded document is the primary
artifact, so a failed patch is logged and never propagated.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..errors import ConfigurationError, MetadataAttachError
from ..models import AttributeSet
from ..protocols import ICLMClient, IDiagnosticLog
from . import diagnostics as channels

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttributeMapping:
    """Maps CLM attribute fields of one group to lower-case sheet columns."""
    group: str
    fields: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, path: Path) -> "AttributeMapping":
        """
        Load a mapping file:

            {"group": "Contract Attributes",
             "fields": {"Contract Type": "contract type", "Tax ID": "tax id"}}
        """
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"could not read attribute mapping {path}: {exc}") from exc

        group = data.get("group") if isinstance(data, dict) else None
        fields = data.get("fields") if isinstance(data, dict) else None
        if not group or not isinstance(fields, dict):
            raise ConfigurationError(f"attribute mapping {path} needs 'group' and 'fields'")
        return cls(group=str(group), fields={str(k): str(v).strip().lower() for k, v in fields.items()})


DEFAULT_ATTRIBUTE_MAPPING = AttributeMapping(
    group="Document Attributes",
    fields={
        "Company Name": "company name",
        "Tax ID": "tax id",
        "Signature Date": "signature date",
        "Contract End Date": "contract end date",
        "Notes": "notes",
        "Phone": "phone",
        "Contract Type": "contract type",
    },
)


def build_attribute_set(row: Mapping[str, Any], mapping: AttributeMapping = DEFAULT_ATTRIBUTE_MAPPING) -> AttributeSet:
    """Build the attribute set for one sheet row; missing cells become ''."""
    values = {}
    for field_name, column in mapping.fields.items():
        value = row.get(column) if row else None
        values[field_name] = "" if value is None else str(value)
    return {mapping.group: values}


def attribute_payload(attributes: AttributeSet) -> Dict[str, Any]:
    """Render an attribute set as the PATCH body the CLM API expects."""
    return {
        "AttributeGroups": {
            group: {name: {"Value": value} for name, value in group_fields.items()}
            for group, group_fields in attributes.items()
        }
    }


class MetadataAttacher:
    """Patches uploaded documents with attribute sets. Never raises."""

    def __init__(self, client: ICLMClient, diagnostics: Optional[IDiagnosticLog] = None):
        self._client = client
        self._diagnostics = diagnostics

    async def attach(self, attributes: AttributeSet, document_id: str) -> bool:
        """Returns True when the patch was accepted."""
        try:
            response = await self._client.patch_document(document_id, attribute_payload(attributes))
            status = getattr(response, "status_code", None)
            logger.info(f"Metadata update for document {document_id}: status {status}")
            if status is None or not 200 <= status < 300:
                raise MetadataAttachError(document_id, status=status)
            return True
        except Exception as exc:
            error = exc if isinstance(exc, MetadataAttachError) else MetadataAttachError(document_id, reason=str(exc) or type(exc).__name__)
            logger.warning(str(error))
            if self._diagnostics is not None:
                self._diagnostics.write(channels.METADATA, str(error))
            return False
