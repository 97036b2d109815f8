"""
Main orchestrator for the HTML Mapper.

Decodes an HTML document into a pydantic model declared with @root and Pick:

    document → root node → model instance → one extractor per bound field

List and nested-model extractors call back into HtmlMapper.populate() with
the node they matched, so composite fields are filled the same way at any
depth.
"""

from pathlib import Path
from typing import Optional, TypeVar, Union

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, ValidationError

from .charset import decode_html_bytes
from .config import MapperConfig
from .exceptions import MappingError
from .extractors import get_extractor, select_first
from .logger import get_module_logger, setup_logger
from .schemas import FieldSpec, get_model_spec, get_root_selector

logger = get_module_logger("mapper")

T = TypeVar("T", bound=BaseModel)

Source = Union[str, bytes, Tag]


class HtmlMapper:
    """
    Deserializes HTML into annotated pydantic models.

    A mapper holds only configuration, so one instance can be shared between
    threads as long as each decode call gets its own document.
    """

    def __init__(
        self,
        config: Optional[MapperConfig] = None,
        log_level: int = None
    ):
        if log_level is not None:
            setup_logger(level=log_level)

        self.config = config or MapperConfig()

    def parse(self, html: str) -> BeautifulSoup:
        """Parse markup with the configured tree builder."""
        return BeautifulSoup(html, self.config.parser)

    def decode(self, source: Source, cls: type[T]) -> T:
        """
        Deserialize HTML into an instance of cls.

        Args:
            source: Raw markup, raw bytes (charset sniffed from <meta>), or
                    an already parsed BeautifulSoup document / Tag
            cls: Pydantic model decorated with @root

        Returns:
            A new instance of cls.  If the root selector matches nothing,
            every field keeps its default.

        Raises:
            MappingError: cls has no root selector, cannot be built without
                          arguments, or declares an unsupported field
        """
        if isinstance(source, bytes):
            source = decode_html_bytes(source)
        document = self.parse(source) if isinstance(source, str) else source
        if not isinstance(document, Tag):
            raise MappingError(f"Cannot decode from {type(source).__name__}", target=cls.__name__)

        spec = get_model_spec(cls)
        root_node = self._find_root(document, cls)
        instance = self._instantiate(cls)

        if root_node is None:
            logger.info(f"No root node for {cls.__name__}, returning defaults")
            return instance

        self._populate_fields(root_node, instance, spec.fields)
        logger.debug(f"Decoded {cls.__name__} ({len(spec.fields)} bound fields)")
        return instance

    def decode_file(self, file_path: Union[str, Path], cls: type[T]) -> T:
        """Deserialize an HTML file; the charset comes from its <meta> declaration."""
        file_path = Path(file_path)
        logger.info(f"Decoding {file_path.name} into {cls.__name__}")
        return self.decode(file_path.read_bytes(), cls)

    def populate(self, node: Tag, cls: type[T]) -> T:
        """
        Build an instance of cls using node as its root.

        Skips the root selector: the caller already holds the node the model
        should read from.  Used for nested models and list items.
        """
        spec = get_model_spec(cls)
        instance = self._instantiate(cls)
        self._populate_fields(node, instance, spec.fields)
        return instance

    def dispatch(self, node: Tag, instance: BaseModel, field: FieldSpec) -> None:
        """
        Extract one field under node and assign it on instance.

        The field's current value is the fallback; it is only overwritten when
        the extractor produced something else.
        """
        default = getattr(instance, field.name)
        extractor = get_extractor(field.kind)
        value = extractor.extract(node, field, default, self)

        if value is default:
            return
        try:
            setattr(instance, field.name, value)
        except (ValidationError, TypeError, ValueError) as e:
            raise MappingError(
                f"Cannot assign field '{field.name}' on {field.owner}: {e}",
                target=field.owner
            ) from e

    def _populate_fields(self, node: Tag, instance: BaseModel, fields: tuple) -> None:
        for field in fields:
            self.dispatch(node, instance, field)

    def _find_root(self, document: Tag, cls: type) -> Optional[Tag]:
        """Root node of cls in document, or None when nothing matches."""
        selector = get_root_selector(cls)
        if selector is None:
            raise MappingError(
                f"{cls.__name__} declares no root selector. Decorate it with @root(\"...\").",
                target=cls.__name__
            )
        return select_first(document, selector)

    def _instantiate(self, cls: type[T]) -> T:
        try:
            return cls()
        except ValidationError as e:
            raise MappingError(
                f"No-args constructor for class {cls.__name__} does not exist. "
                f"Give every field a default.",
                target=cls.__name__,
                details={"errors": e.errors(include_url=False)}
            ) from e
        except Exception as e:
            raise MappingError(
                f"Constructing {cls.__name__} failed: {e}",
                target=cls.__name__
            ) from e


# Shared mapper for the module-level helpers
_default_mapper: Optional[HtmlMapper] = None


def get_default_mapper() -> HtmlMapper:
    """Get or create the default mapper, configured from the environment."""
    global _default_mapper
    if _default_mapper is None:
        _default_mapper = HtmlMapper(config=MapperConfig.from_env())
    return _default_mapper


def decode(source: Source, cls: type[T]) -> T:
    """Convenience function to decode HTML with the default mapper."""
    return get_default_mapper().decode(source, cls)


def decode_file(file_path: Union[str, Path], cls: type[T]) -> T:
    """Convenience function to decode an HTML file with the default mapper."""
    return get_default_mapper().decode_file(file_path, cls)
