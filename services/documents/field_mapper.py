"""
Field Mapper

Turns a TransactionRecord into the ordered list of positioned text
instructions for the cover sheet, using the coordinate layout loaded
from YAML. Pure: no I/O beyond the first layout load, no mutation of
the record.

Source path syntax:
    property.address         -> record.property.address
    commission.sellers_assist -> record.commission.sellers_assist
    parties[0].name          -> record.parties[0].name
    name                     -> party.name (inside a party slot)
"""

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from .types import (
    AgentRole, DocumentLayout, LayoutField, Party, PartySide,
    PositionedTextInstruction, TransactionRecord
)
from .transforms import apply_transform
from .layout_loader import LayoutLoader

logger = logging.getLogger(__name__)

# Slot name -> party side, and the positional fallback index when no
# party carries a matching role tag.
SLOT_SIDES = {
    'seller': (PartySide.SELLER, 0),
    'buyer': (PartySide.BUYER, 1),
}


class FieldMapper:
    """
    Maps transaction records to PositionedTextInstruction lists.

    Usage:
        instructions = FieldMapper.map(record)
        instructions = FieldMapper.map(record, layout=custom_layout)
    """

    # Pattern for bracket notation: name[index]
    BRACKET_PATTERN = re.compile(r'^([a-zA-Z_][a-zA-Z0-9_]*)\[(\d+)\]$')

    @classmethod
    def map(
        cls,
        record: TransactionRecord,
        layout: Optional[DocumentLayout] = None
    ) -> List[PositionedTextInstruction]:
        """
        Map a record to instructions.

        Common fields come first in layout order, then each party slot
        the role's variant renders, then the variant's own fields.
        Empty values produce no instruction.
        """
        layout = layout or LayoutLoader.get_or_raise()
        role = AgentRole.normalize(record.agent.role)
        variant = layout.variant_for(role)
        context = cls.build_context(record)

        instructions = []
        for field_def in layout.fields:
            cls._emit(field_def, context, instructions)

        for slot_name in variant.party_slots:
            party = cls.select_party(record.parties, slot_name)
            if party is None:
                logger.debug(f"No party for slot '{slot_name}'")
                continue
            party_context = {'party': party, **context}
            for field_def in layout.party_slots[slot_name]:
                cls._emit(field_def, party_context, instructions, root='party')

        for field_def in variant.fields:
            cls._emit(field_def, context, instructions)

        return instructions

    @classmethod
    def build_context(cls, record: TransactionRecord) -> Dict[str, Any]:
        return {
            'agent': record.agent,
            'property': record.property,
            'parties': list(record.parties),
            'commission': record.commission,
            'details': record.details,
            'title': record.title,
            'notes': record.notes,
        }

    @classmethod
    def select_party(cls, parties: Sequence[Party], slot_name: str) -> Optional[Party]:
        """
        Choose the party for a slot.

        First party whose role tag matches the slot's side wins. When no
        party is tagged for that side, fall back to position: the first
        party fills the seller slot, the second fills the buyer slot.
        Untagged legacy records rely on the positional path.
        """
        side, fallback_index = SLOT_SIDES[slot_name]
        for party in parties:
            if party.side is side:
                return party

        if len(parties) > fallback_index:
            logger.debug(f"No {side.value}-tagged party, using position {fallback_index} for '{slot_name}'")
            return parties[fallback_index]
        return None

    @classmethod
    def _emit(
        cls,
        field_def: LayoutField,
        context: Dict[str, Any],
        instructions: List[PositionedTextInstruction],
        root: Optional[str] = None
    ) -> None:
        if field_def.when and not cls.resolve_path(field_def.when, context):
            return

        source = f"{root}.{field_def.source}" if root else field_def.source
        raw_value = cls.resolve_path(source, context)
        if raw_value is None or raw_value == "":
            return

        text = apply_transform(raw_value, field_def.transform)
        if not text:
            return

        instructions.append(PositionedTextInstruction(
            page=field_def.page,
            x=field_def.x,
            y=field_def.y,
            text=f"{field_def.prefix}{text}",
            font_size=field_def.size,
            bold=field_def.bold,
            max_width=field_def.max_width
        ))

    @classmethod
    def resolve_path(cls, source_path: str, context: Dict[str, Any]) -> Any:
        """
        Resolve a source path to a value.

        Returns:
            The resolved value, or None if any step is missing
        """
        if not source_path:
            return None

        parts = cls._parse_path(source_path)
        if not parts:
            return None

        current = cls._get_value(context, parts[0])
        for part in parts[1:]:
            if current is None:
                return None
            current = cls._get_value(current, part)

        return current

    @classmethod
    def _parse_path(cls, path: str) -> List[str]:
        """
        Parse a source path into parts.

        Examples:
            "property.address" -> ["property", "address"]
            "parties[0].name" -> ["parties[0]", "name"]
        """
        return [part for part in path.split('.') if part]

    @classmethod
    def _get_value(cls, obj: Any, part: str) -> Any:
        bracket_match = cls.BRACKET_PATTERN.match(part)
        if bracket_match:
            collection = cls._get_attr_or_key(obj, bracket_match.group(1))
            index = int(bracket_match.group(2))
            if isinstance(collection, (list, tuple)) and index < len(collection):
                return collection[index]
            return None

        return cls._get_attr_or_key(obj, part)

    @classmethod
    def _get_attr_or_key(cls, obj: Any, key: str) -> Any:
        if isinstance(obj, dict):
            return obj.get(key)
        return getattr(obj, key, None)


def map_record(record: TransactionRecord, layout: Optional[DocumentLayout] = None) -> List[PositionedTextInstruction]:
    """Convenience wrapper around FieldMapper.map."""
    return FieldMapper.map(record, layout)
