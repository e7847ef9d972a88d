"""
Morph Registry - Explicit registration and discovery of morphs and pipelines.

Nothing registers itself: create_morph() and build() never touch the
registry. Callers register what they want discoverable, by id, with an
optional category and tags.
"""

from typing import Dict, Iterable, List, Optional, Union

from ..logging_config import configure_logger_for_trace
from ..morph_exceptions import PipelineConfigurationError
from .morph import Morph
from .pipeline import Pipeline

logger = configure_logger_for_trace(__name__)

Registered = Union[Morph, Pipeline]


class MorphRegistry:
    """
    Global registry for morphs and built pipelines.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a registry.
    ::: This is-in-process Main-Process.
    ::: This is stateful.

    Example:
        MorphRegistry.register_morph("strip", strip, category="text", tags=["clean"])
        MorphRegistry.register_pipeline("normalize", normalize)

        strip = MorphRegistry.get_morph("strip")
        cleaners = MorphRegistry.get_by_tag("clean")
    """

    # Class-level storage
    _morphs: Dict[str, Morph] = {}
    _pipelines: Dict[str, Pipeline] = {}
    _by_category: Dict[str, List[str]] = {}
    _by_tag: Dict[str, List[str]] = {}

    @classmethod
    def _index(cls, id: str, category: Optional[str], tags: Optional[Iterable[str]]) -> None:
        if category:
            names = cls._by_category.setdefault(category, [])
            if id not in names:
                names.append(id)
        for tag in tags or ():
            names = cls._by_tag.setdefault(tag, [])
            if id not in names:
                names.append(id)

    @classmethod
    def _check_id(cls, id: str) -> None:
        if not isinstance(id, str) or not id:
            raise PipelineConfigurationError(f"registry id must be a non-empty string, got {id!r}")
        if id in cls._morphs or id in cls._pipelines:
            logger.debug(f"Replacing registry entry '{id}'")

    @classmethod
    def register_morph(cls, id: str, morph: Morph, category: Optional[str] = None,
                       tags: Optional[Iterable[str]] = None) -> Morph:
        """
        Register a morph.

        Args:
            id: Registry id (may differ from morph.name)
            morph: Morph to register
            category: Optional category
            tags: Optional tags

        Returns:
            The registered morph
        """
        if not isinstance(morph, Morph):
            raise PipelineConfigurationError(f"register_morph() expects a Morph, got {type(morph).__name__}")
        cls._check_id(id)
        cls._pipelines.pop(id, None)
        cls._morphs[id] = morph
        cls._index(id, category, tags)
        return morph

    @classmethod
    def register_pipeline(cls, id: str, pipeline: Pipeline, category: Optional[str] = None,
                          tags: Optional[Iterable[str]] = None) -> Pipeline:
        """
        Register a built pipeline.

        Category and tags default to the pipeline's build metadata.
        """
        if not isinstance(pipeline, Pipeline):
            raise PipelineConfigurationError(
                f"register_pipeline() expects a built Pipeline, got {type(pipeline).__name__}"
            )
        cls._check_id(id)
        cls._morphs.pop(id, None)
        cls._pipelines[id] = pipeline
        cls._index(
            id,
            category if category is not None else pipeline.build_metadata.category,
            tags if tags is not None else pipeline.build_metadata.tags,
        )
        return pipeline

    @classmethod
    def get_morph(cls, id: str) -> Optional[Morph]:
        return cls._morphs.get(id)

    @classmethod
    def get_pipeline(cls, id: str) -> Optional[Pipeline]:
        return cls._pipelines.get(id)

    @classmethod
    def get(cls, id: str) -> Optional[Registered]:
        """Get a morph or pipeline by id."""
        return cls._morphs.get(id) or cls._pipelines.get(id)

    @classmethod
    def get_by_category(cls, category: str) -> List[Registered]:
        """
        Get all morphs and pipelines in a category.

        Args:
            category: Category name

        Returns:
            Registered objects in registration order
        """
        return [obj for obj in map(cls.get, cls._by_category.get(category, [])) if obj is not None]

    @classmethod
    def get_by_tag(cls, tag: str) -> List[Registered]:
        return [obj for obj in map(cls.get, cls._by_tag.get(tag, [])) if obj is not None]

    @classmethod
    def list_ids(cls) -> List[str]:
        """List all registered ids, morphs first."""
        return list(cls._morphs.keys()) + list(cls._pipelines.keys())

    @classmethod
    def unregister(cls, id: str) -> bool:
        """
        Remove an entry.

        Returns:
            True if the id was registered, False otherwise
        """
        found = cls._morphs.pop(id, None) is not None or cls._pipelines.pop(id, None) is not None
        if found:
            for index in (cls._by_category, cls._by_tag):
                for names in index.values():
                    if id in names:
                        names.remove(id)
        return found

    @classmethod
    def clear(cls) -> None:
        """Clear all registrations (useful for testing)."""
        cls._morphs.clear()
        cls._pipelines.clear()
        cls._by_category.clear()
        cls._by_tag.clear()


def register_morph(id: str, morph: Morph, category: Optional[str] = None,
                   tags: Optional[Iterable[str]] = None) -> Morph:
    """Register a morph in the global registry."""
    return MorphRegistry.register_morph(id, morph, category, tags)


def register_pipeline(id: str, pipeline: Pipeline, category: Optional[str] = None,
                      tags: Optional[Iterable[str]] = None) -> Pipeline:
    """Register a built pipeline in the global registry."""
    return MorphRegistry.register_pipeline(id, pipeline, category, tags)
