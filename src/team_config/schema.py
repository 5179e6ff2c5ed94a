"""JSON Schema describing the profile types a config may contain.

The schema is a draft 2020-12 document. Each profile type contributes an
``if type == <name> then properties: {...}`` entry, so a single schema file can
describe, validate and type every profile in a config.
"""

import copy
import logging
from pathlib import Path
from typing import TYPE_CHECKING
from typing import Any

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from jsonschema.exceptions import UnknownType

from . import jsonc
from .constants import JSON_SCHEMA
from .constants import SCHEMA_VERSION
from .exceptions import ConfigFileError
from .exceptions import ConfigValidationError
from .models import ProfileProperty
from .models import ProfileTypeConfiguration
from .models import TypedProfile
from .models import empty_config
from .utils import get_path

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

PROFILE_NAME_PATTERN = "^\\S*$"

JSON_TYPES = {"string", "number", "integer", "boolean", "object", "array", "null"}

# Property types that are not JSON Schema types, and how they are represented
TYPE_ALIASES = {"json": ["object", "array"], "existingLocalFile": ["string"]}

EMPTY_VALUES = {"string": "", "number": 0, "integer": 0, "boolean": False, "object": {}, "array": []}


def _json_type(prop_type: str | list[str]) -> str | list[str]:
    types = [prop_type] if isinstance(prop_type, str) else prop_type
    resolved: list[str] = []
    for each in types:
        for alias in TYPE_ALIASES.get(each, [each] if each in JSON_TYPES else ["string"]):
            if alias not in resolved:
                resolved.append(alias)
    return resolved[0] if len(resolved) == 1 else resolved


def _empty_value(prop_type: str | list[str]) -> Any:
    json_type = _json_type(prop_type)
    if isinstance(json_type, list):
        json_type = json_type[0]
    return copy.deepcopy(EMPTY_VALUES.get(json_type))


class ConfigSchema:
    """Profile type definitions and the JSON Schema built from them.

    Args:
        profile_types: Profile type configurations
    """

    def __init__(self, profile_types: list[ProfileTypeConfiguration] | None = None):
        self.profile_types = list(profile_types or [])

    # ===== Construction =====

    @classmethod
    def from_schema(cls, schema: dict[str, Any]) -> "ConfigSchema":
        return cls(cls.load_schema(schema))

    @classmethod
    def from_file(cls, path: Path | str) -> "ConfigSchema":
        """Load a schema file.

        Raises:
            ConfigFileError: If the file cannot be read or parsed
        """
        path = Path(path)
        try:
            schema = jsonc.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigFileError(f"Failed to read the schema file '{path}': {e}", path) from e
        except jsonc.JsoncDecodeError as e:
            raise ConfigFileError(
                f"Failed to parse the schema file '{path}': {e.msg} (line {e.lineno}, column {e.colno})", path
            ) from e
        if not isinstance(schema, dict):
            raise ConfigFileError(f"Failed to parse the schema file '{path}': expected a JSON object", path)
        logger.debug(f"Loaded schema from {path}")
        return cls.from_schema(schema)

    @classmethod
    def from_config(cls, config: "Config") -> "ConfigSchema | None":
        """Load the local schema referenced by the active layer, if there is one."""
        info = config.get_schema_info()
        if not info.local or info.resolved is None or not Path(info.resolved).exists():
            return None
        return cls.from_file(info.resolved)

    # ===== Lookup =====

    def profile_type(self, type_name: str | None) -> ProfileTypeConfiguration | None:
        for profile_type in self.profile_types:
            if profile_type.type == type_name:
                return profile_type
        return None

    def property(self, type_name: str | None, prop_name: str) -> ProfileProperty | None:
        profile_type = self.profile_type(type_name)
        if profile_type is None:
            return None
        return profile_type.properties.get(prop_name)

    def find_property_type(self, prop_path: str, properties: dict[str, Any]) -> str | None:
        """Find the declared type of the property a path addresses.

        Args:
            prop_path: Full property path, ``profiles.<...>.properties.<name>``
            properties: Config document used to look up the owning profile's type

        Returns:
            The type (the first one when several are declared), or None if unknown
        """
        if ".properties." not in prop_path:
            return None

        profile_path, prop_name = prop_path.rsplit(".properties.", 1)
        prop = self.property(get_path(properties, f"{profile_path}.type"), prop_name)
        if prop is None:
            return None
        return prop.type[0] if isinstance(prop.type, list) else prop.type

    # ===== Schema Documents =====

    @staticmethod
    def generate_schema(profile_type: ProfileTypeConfiguration) -> dict[str, Any]:
        """Build the JSON Schema of one profile type's ``properties`` object."""
        properties = {}
        for name, prop in profile_type.properties.items():
            prop_schema: dict[str, Any] = {"type": _json_type(prop.type)}
            if prop.description is not None:
                prop_schema["description"] = prop.description
            if prop.default is not None:
                prop_schema["default"] = prop.default
            if prop.allowed_values:
                prop_schema["enum"] = list(prop.allowed_values)
            properties[name] = prop_schema

        schema: dict[str, Any] = {"type": "object"}
        if profile_type.title is not None:
            schema["title"] = profile_type.title
        if profile_type.description is not None:
            schema["description"] = profile_type.description
        schema["properties"] = properties
        if profile_type.required:
            schema["required"] = list(profile_type.required)
        return schema

    @staticmethod
    def parse_schema(type_name: str, then: dict[str, Any]) -> ProfileTypeConfiguration:
        """Rebuild a profile type from the ``then`` clause of its schema entry."""
        schema = get_path(then, "properties.properties") or {}
        secure = get_path(then, "properties.secure.items.enum") or []

        properties = {}
        for name, prop_schema in (schema.get("properties") or {}).items():
            properties[name] = ProfileProperty(
                type=prop_schema.get("type", "string"),
                secure=name in secure,
                description=prop_schema.get("description"),
                default=prop_schema.get("default"),
                allowed_values=prop_schema.get("enum"),
            )

        return ProfileTypeConfiguration(
            type=type_name,
            properties=properties,
            title=schema.get("title"),
            description=schema.get("description"),
            required=list(schema.get("required") or []),
        )

    @classmethod
    def build_schema(cls, profile_types: list[ProfileTypeConfiguration]) -> dict[str, Any]:
        """Build the full config JSON Schema for a set of profile types.

        Args:
            profile_types: Profile type configurations

        Returns:
            JSON Schema document
        """
        entries: list[dict[str, Any]] = [
            {
                "if": {"properties": {"type": False}},
                "then": {"properties": {"properties": {"title": "Missing profile type"}}},
            }
        ]
        for profile_type in profile_types:
            then: dict[str, Any] = {"properties": {"properties": cls.generate_schema(profile_type)}}
            if profile_type.secure_properties:
                then["properties"]["secure"] = {"items": {"enum": profile_type.secure_properties}}
            entries.append({"if": {"properties": {"type": {"const": profile_type.type}}}, "then": then})

        return {
            "$schema": JSON_SCHEMA,
            "$version": SCHEMA_VERSION,
            "type": "object",
            "description": "Team configuration",
            "properties": {
                "profiles": {
                    "type": "object",
                    "description": "Mapping of profile names to profile configurations",
                    "patternProperties": {
                        PROFILE_NAME_PATTERN: {
                            "type": "object",
                            "description": "Profile configuration object",
                            "properties": {
                                "type": {
                                    "description": "Profile type",
                                    "type": "string",
                                    "enum": [profile_type.type for profile_type in profile_types],
                                },
                                "properties": {"description": "Profile properties object", "type": "object"},
                                "profiles": {
                                    "description": "Optional subprofile configurations",
                                    "type": "object",
                                    "$ref": "#/properties/profiles",
                                },
                                "secure": {
                                    "description": "Secure property names",
                                    "type": "array",
                                    "items": {"type": "string"},
                                    "uniqueItems": True,
                                },
                            },
                            "allOf": entries,
                        }
                    },
                },
                "defaults": {
                    "type": "object",
                    "description": "Mapping of profile types to default profile names",
                    "additionalProperties": {"type": "string"},
                },
                "autoStore": {
                    "type": "boolean",
                    "description": "If true, values you enter when prompted are stored for future use",
                },
            },
        }

    @classmethod
    def load_schema(cls, schema: dict[str, Any]) -> list[ProfileTypeConfiguration]:
        """Extract the profile types from a config JSON Schema.

        Args:
            schema: Document produced by ``build_schema``

        Returns:
            Profile type configurations in schema order
        """
        entries = get_path(schema, "properties.profiles.patternProperties") or {}
        profile_schema = entries.get(PROFILE_NAME_PATTERN) or {}

        profile_types = []
        for entry in profile_schema.get("allOf") or []:
            type_name = get_path(entry, "if.properties.type.const")
            if type_name is not None:
                profile_types.append(cls.parse_schema(type_name, entry.get("then") or {}))
        return profile_types

    def to_json_schema(self) -> dict[str, Any]:
        return self.build_schema(self.profile_types)

    # ===== Config Templates =====

    def build_config(self, populate_properties: bool = False) -> dict[str, Any]:
        """Build a starter config document with one profile per profile type.

        Each profile is named after its type. The result is meant to be merged into
        a layer with ``api.layers.merge``.

        Args:
            populate_properties: Fill in template properties and make each profile
                the default for its type

        Returns:
            Config document with ``autoStore`` enabled
        """
        document = empty_config()
        for profile_type in self.profile_types:
            document["profiles"][profile_type.type] = self.build_default_profile(profile_type, populate_properties)
            if populate_properties:
                document["defaults"][profile_type.type] = profile_type.type
        document["autoStore"] = True
        return document

    @staticmethod
    def build_default_profile(
        profile_type: ProfileTypeConfiguration, populate_properties: bool = False
    ) -> dict[str, Any]:
        """Build a profile of the given type.

        Secure template properties are listed in ``secure`` and left unset. Other
        template properties get their declared default, or an empty value of their type.
        """
        properties: dict[str, Any] = {}
        secure: list[str] = []
        if populate_properties:
            for name, prop in profile_type.properties.items():
                if not prop.include_in_template:
                    continue
                if prop.secure:
                    secure.append(name)
                elif prop.default is not None:
                    properties[name] = copy.deepcopy(prop.default)
                else:
                    properties[name] = _empty_value(prop.type)
        return {"type": profile_type.type, "properties": properties, "secure": secure}

    # ===== Validation =====

    def validate(self, document: dict[str, Any]) -> None:
        """Validate a config document against this schema.

        Raises:
            ConfigValidationError: Listing every violation found
        """
        _validate(self.to_json_schema(), document, "config")

    def typed_profile(self, type_name: str | None, properties: dict[str, Any]) -> TypedProfile:
        """Tag a profile's properties with its type, validating them when the type is known.

        Args:
            type_name: Declared profile type (may be None)
            properties: Profile properties

        Returns:
            TypedProfile; ``known`` is False for an untyped or unknown profile

        Raises:
            ConfigValidationError: If the properties do not match their known type
        """
        profile_type = self.profile_type(type_name)
        if profile_type is None:
            return TypedProfile(type=type_name, properties=dict(properties), known=False)

        _validate(self.generate_schema(profile_type), properties, f"'{type_name}' profile")
        return TypedProfile(type=type_name, properties=dict(properties), known=True)


def _validate(schema: dict[str, Any], document: Any, what: str) -> None:
    try:
        validator = Draft202012Validator(schema)
        errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    except (SchemaError, UnknownType) as e:
        raise ConfigValidationError(f"Invalid schema: {e}") from e

    if errors:
        details = "\n".join(
            f"  {'.'.join(str(p) for p in error.absolute_path) or '<root>'}: {error.message}" for error in errors
        )
        raise ConfigValidationError(f"Invalid {what}:\n{details}")
