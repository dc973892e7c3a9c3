"""
Layout Loader

Loads, validates, and caches cover sheet layouts from YAML files.
Validates every layout on first use and fails fast if any is invalid.
"""

import logging
import re
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import yaml

from .types import AgentRole, DocumentLayout, LayoutField, LayoutVariant
from .transforms import TRANSFORMS
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Paths
DOCUMENTS_DIR = Path(__file__).parent.parent.parent / 'documents'

DEFAULT_LAYOUT = 'cover-sheet'

REQUIRED_FIELD_KEYS = ('key', 'source', 'x', 'y')


class LayoutLoader:
    """
    Process-wide loader for document layouts.

    Loads all YAML files from the documents/ directory, validates them,
    and caches them for fast lookup during request handling.

    Usage:
        # On app startup (or lazily on first get)
        LayoutLoader.load_all()

        # During request handling
        layout = LayoutLoader.get_or_raise('cover-sheet')
    """

    _layouts: Dict[str, DocumentLayout] = {}
    _loaded: bool = False
    _lock = threading.Lock()
    documents_dir: Path = DOCUMENTS_DIR

    @classmethod
    def load_all(cls) -> None:
        """
        Load and validate all layouts.

        If any layout fails validation, raises ConfigurationError with
        all errors listed.
        """
        with cls._lock:
            layouts: Dict[str, DocumentLayout] = {}
            errors = []

            if not cls.documents_dir.exists():
                raise ConfigurationError(f"Documents directory not found: {cls.documents_dir}")

            yaml_files = sorted(cls.documents_dir.glob('*.yml')) + sorted(cls.documents_dir.glob('*.yaml'))
            for yaml_file in yaml_files:
                try:
                    layout = cls.load_file(yaml_file)
                    if layout.slug in layouts:
                        errors.append(f"{yaml_file.name}: Duplicate slug '{layout.slug}'")
                        continue
                    layouts[layout.slug] = layout
                    logger.debug(f"Loaded layout: {layout.slug}")
                except (ConfigurationError, yaml.YAMLError) as e:
                    errors.append(f"{yaml_file.name}: {e}")

            if errors:
                error_msg = "Layout configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
                logger.error(error_msg)
                raise ConfigurationError(error_msg)

            cls._layouts = layouts
            cls._loaded = True
            logger.info(f"Loaded {len(layouts)} layout(s)")

    @classmethod
    def load_file(cls, path: Path) -> DocumentLayout:
        """Load a single YAML file and validate it."""
        return cls.parse(yaml.safe_load(Path(path).read_text()))

    @classmethod
    def parse(cls, raw: Any) -> DocumentLayout:
        """
        Validate a parsed YAML document and convert it to a DocumentLayout.

        Raises:
            ConfigurationError: if the layout is malformed
        """
        if not raw or not isinstance(raw, dict):
            raise ConfigurationError("Empty layout definition")
        for key in ('slug', 'fields', 'party_fields', 'party_slots', 'variants'):
            if key not in raw:
                raise ConfigurationError(f"Layout is missing '{key}'")

        fields = tuple(cls._build_field(f) for f in raw['fields'])

        party_slots = {}
        for slot_name, slot in raw['party_slots'].items():
            slot_fields = []
            for party_field in raw['party_fields']:
                data = dict(party_field)
                data['key'] = f"{slot_name}_{party_field.get('key')}"
                data['page'] = slot.get('page', 0)
                data['x'] = float(slot['x']) + float(party_field.get('dx', 0))
                slot_fields.append(cls._build_field(data))
            party_slots[slot_name] = tuple(slot_fields)

        variants = {}
        for role in AgentRole:
            raw_variant = raw['variants'].get(role.value)
            if raw_variant is None:
                raise ConfigurationError(f"Layout has no variant for role '{role.value}'")
            slots = tuple(raw_variant.get('party_slots') or ())
            unknown = [s for s in slots if s not in party_slots]
            if unknown:
                raise ConfigurationError(
                    f"Variant '{role.value}' references unknown party slots {unknown}. "
                    f"Available slots: {sorted(party_slots)}"
                )
            variants[role] = LayoutVariant(
                role=role,
                party_slots=slots,
                fields=tuple(cls._build_field(f) for f in raw_variant.get('fields') or ())
            )

        cls._validate_unique_keys(fields, variants)

        return DocumentLayout(
            schema_version=str(raw.get('schema_version', '1.0')),
            slug=raw['slug'],
            name=raw.get('name', raw['slug']),
            fields=fields,
            party_slots=party_slots,
            variants=variants
        )

    @classmethod
    def _build_field(cls, data: Dict[str, Any]) -> LayoutField:
        missing = [k for k in REQUIRED_FIELD_KEYS if k not in data]
        if missing:
            raise ConfigurationError(f"Field '{data.get('key', 'unknown')}' is missing {missing}")

        field_key = data['key']
        transform = data.get('transform')
        if transform and transform not in TRANSFORMS:
            raise ConfigurationError(
                f"Field '{field_key}' uses unknown transform '{transform}'. "
                f"Available transforms: {sorted(TRANSFORMS)}"
            )

        for path_key in ('source', 'when'):
            path = data.get(path_key)
            if path and cls._has_invalid_array_syntax(path):
                raise ConfigurationError(
                    f"Field '{field_key}' has invalid {path_key} syntax: '{path}'. "
                    f"Use bracket notation for arrays (e.g., 'parties[0]' not 'parties.0')"
                )

        try:
            layout_field = LayoutField.from_dict(data)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Field '{field_key}' is invalid: {e}")

        if layout_field.page < 0:
            raise ConfigurationError(f"Field '{field_key}' has a negative page index")
        return layout_field

    @classmethod
    def _validate_unique_keys(cls, fields, variants) -> None:
        common: Set[str] = set()
        for f in fields:
            if f.key in common:
                raise ConfigurationError(f"Duplicate field key: {f.key}")
            common.add(f.key)

        for role, variant in variants.items():
            seen = set(common)
            for f in variant.fields:
                if f.key in seen:
                    raise ConfigurationError(f"Duplicate field key in variant '{role.value}': {f.key}")
                seen.add(f.key)

    @classmethod
    def _has_invalid_array_syntax(cls, source: str) -> bool:
        """Check if source uses dot notation for array indices (invalid)."""
        return bool(re.search(r'\.\d+(?:\.|$)', source))

    @classmethod
    def get(cls, slug: str) -> Optional[DocumentLayout]:
        """
        Get a layout by slug, loading all layouts on first use.

        Returns None if not found.
        """
        if not cls._loaded:
            cls.load_all()
        return cls._layouts.get(slug)

    @classmethod
    def get_or_raise(cls, slug: str = DEFAULT_LAYOUT) -> DocumentLayout:
        layout = cls.get(slug)
        if not layout:
            raise ConfigurationError(f"Unknown layout slug: {slug}")
        return layout

    @classmethod
    def is_loaded(cls) -> bool:
        return cls._loaded

    @classmethod
    def clear(cls) -> None:
        """Clear all cached layouts. Mainly for testing."""
        with cls._lock:
            cls._layouts = {}
            cls._loaded = False

    @classmethod
    def validate_yaml_content(cls, yaml_content: str) -> List[str]:
        """
        Validate YAML content without caching it.

        Returns:
            List of validation error messages (empty if valid)
        """
        try:
            cls.parse(yaml.safe_load(yaml_content))
        except yaml.YAMLError as e:
            return [f"YAML syntax error: {e}"]
        except ConfigurationError as e:
            return [str(e)]
        return []
