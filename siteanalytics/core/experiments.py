# ==============================================================================
# Experiment Assignment Engine
# ==============================================================================
"""
Per-execution-context experiment resolution.

One ExperimentContext corresponds to one page load: it holds the assignment
cache, the user identifier and the URL query of that load. Contexts are
created per request and never shared, so there is no process-wide state.

Resolution order for `assign(name)`:
    1. Cached assignment in this context -> returned, no exposure
    2. Config from the server-distributed list, else synthesized from an
       inline variant-key list
    3. No config -> None, no exposure
    4. `<override_prefix><name>` query parameter naming a configured variant
       -> that variant, exposure marked forced
    5. Otherwise hash bucket of `<name>.<user_id>` + weighted assignment
"""

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

from siteanalytics.core.hashing import assign_variant, bucket_for_user, inline_variants
from siteanalytics.core.models import ExperimentConfig, Exposure

logger = logging.getLogger(__name__)

DEFAULT_OVERRIDE_PREFIX = "aa_variant_"


def parse_query(query: str | Mapping[str, str] | None) -> dict[str, str]:
    """
    Normalize a URL, query string or mapping into first-value parameters.

    Accepts "?a=1&b=2", "a=1&b=2", a full URL, or an existing mapping.
    """
    if not query:
        return {}
    if isinstance(query, Mapping):
        return {str(k): str(v) for k, v in query.items() if v is not None}

    text = query
    if "://" in text:
        text = urlsplit(text).query
    elif text.startswith("?"):
        text = text[1:]
    return {key: values[0] for key, values in parse_qs(text).items() if values}


@dataclass
class VariantElement:
    """
    A content-bearing element tagged with an experiment.

    Attributes:
        experiment: Experiment name the element participates in
        variants: Lower-cased variant key -> substitute content
        content: Current content (replaced in place when a substitute applies)
    """

    experiment: str
    variants: dict[str, str] = field(default_factory=dict)
    content: str = ""


class ExperimentContext:
    """
    Assignment cache and exposure log for one execution context.

    Args:
        user_id: Identifier hashed together with the experiment name
        experiments: Server-distributed experiment configs (may be empty)
        query: URL query of the page load (string, URL or mapping)
        on_exposure: Optional callback receiving each emitted Exposure
        override_prefix: Query parameter prefix for manual overrides
    """

    def __init__(
        self,
        user_id: str | None,
        experiments: Iterable[ExperimentConfig | dict] | None = None,
        query: str | Mapping[str, str] | None = None,
        on_exposure: Callable[[Exposure], None] | None = None,
        override_prefix: str = DEFAULT_OVERRIDE_PREFIX,
    ):
        self.user_id = user_id
        self._configs: dict[str, ExperimentConfig] = {}
        for config in experiments or []:
            parsed = (
                config if isinstance(config, ExperimentConfig) else ExperimentConfig(**config)
            )
            # First definition of a key wins
            self._configs.setdefault(parsed.key, parsed)
        self._params = parse_query(query)
        self._on_exposure = on_exposure
        self._override_prefix = override_prefix
        self._cache: dict[str, str] = {}
        self.exposures: list[Exposure] = []

    @classmethod
    def from_payload(cls, payload: dict | None, user_id: str | None, **kwargs) -> "ExperimentContext":
        """Build a context from the `{"experiments": [...]}` config body."""
        experiments = (payload or {}).get("experiments") or []
        return cls(user_id, experiments=experiments, **kwargs)

    @property
    def assignments(self) -> dict[str, str]:
        """Experiments resolved so far in this context."""
        return dict(self._cache)

    def _resolve_config(self, name: str, variants: Sequence[str] | None) -> ExperimentConfig | None:
        config = self._configs.get(name)
        if config is None and variants:
            config = ExperimentConfig(key=name, variants=inline_variants(variants))
        return config

    def _forced_variant(self, name: str, config: ExperimentConfig) -> str | None:
        forced = self._params.get(f"{self._override_prefix}{name}")
        if forced and config.has_variant(forced):
            return forced
        if forced:
            logger.debug("Ignoring override %r for experiment %s: not a variant", forced, name)
        return None

    def _emit(self, exposure: Exposure) -> None:
        self.exposures.append(exposure)
        if self._on_exposure is not None:
            self._on_exposure(exposure)

    def assign(self, name: str, variants: Sequence[str] | None = None) -> str | None:
        """
        Resolve an experiment to a variant key for this context.

        Args:
            name: Experiment name
            variants: Optional inline variant keys, used when no server config
                      exists for the name

        Returns:
            The assigned variant key, or None when the experiment is unknown
        """
        if name in self._cache:
            return self._cache[name]

        config = self._resolve_config(name, variants)
        if config is None:
            return None

        forced = self._forced_variant(name, config)
        if forced is not None:
            self._cache[name] = forced
            self._emit(Exposure(experiment=name, variant=forced, forced=True))
            return forced

        bucket = bucket_for_user(name, self.user_id)
        assigned = assign_variant(bucket, config.variants)
        self._cache[name] = assigned
        self._emit(Exposure(experiment=name, variant=assigned))
        return assigned

    def render(self, elements: Iterable[VariantElement]) -> list[VariantElement]:
        """
        Apply resolved variants to declarative elements.

        Each element's experiment is resolved from server config only. When the
        lower-cased variant key has a substitute, the element's content is
        replaced; control or unmatched variants keep the original content.
        """
        rendered = []
        for element in elements:
            variant = self.assign(element.experiment)
            if variant:
                replacement = element.variants.get(variant.lower())
                if replacement is not None:
                    element.content = replacement
            rendered.append(element)
        return rendered
