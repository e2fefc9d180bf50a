"""Registries of diversity and similarity metrics.

A diversity metric maps the count vector of a group (one entry per clonotype)
to a number. A similarity metric maps the count vectors of two groups, aligned
over the union of their clonotypes, to a number.
"""
import inspect
from typing import Any, Callable, Dict, Iterator, Mapping, NamedTuple, Optional, Union

import numpy as np
from scipy.spatial import distance as sc_distance

from .._exceptions import InvalidMethodError

MetricType = Union[str, Callable[..., float]]


class Metric(NamedTuple):
    """A registered metric and how to call it."""

    name: str
    func: Callable[..., float]
    #: Pass proportions instead of counts
    proportions: bool = False
    #: `f(a, b) == f(b, a)` (similarity metrics only)
    symmetric: bool = True
    #: Defined for a group compared with itself (similarity metrics only)
    reflexive: bool = True

    def __call__(self, *counts: np.ndarray, **kwargs) -> float:
        if self.proportions:
            counts = tuple(c / np.sum(c) for c in counts)
        return self.func(*counts, **_accepted_kwargs(self.func, kwargs))


def _accepted_kwargs(func: Callable, kwargs: Mapping[str, Any]) -> Dict[str, Any]:
    """Subset of `kwargs` that `func` accepts."""
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return dict(kwargs)
    if any(p.kind == p.VAR_KEYWORD for p in sig.parameters.values()):
        return dict(kwargs)
    return {k: v for k, v in kwargs.items() if k in sig.parameters}


def _check_arity(
    name: str,
    func: Callable,
    n_args: int,
    kwargs: Optional[Mapping[str, Any]] = None,
):
    """Raise an :class:`~scvdj.InvalidMethodError` if `func` can not be called
    with `n_args` count vectors (and `kwargs`, if given)."""
    if not callable(func):
        raise InvalidMethodError(f"Metric '{name}' is not callable.")
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        # builtins without introspectable signature
        return
    params = sig.parameters.values()
    positional = [
        p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    n_required = sum(p.default is p.empty for p in positional)
    has_varargs = any(p.kind == p.VAR_POSITIONAL for p in params)
    if n_required > n_args or (len(positional) < n_args and not has_varargs):
        raise InvalidMethodError(
            f"Metric '{name}' must accept exactly {n_args} count vector(s) as "
            f"positional argument(s), but has the signature {sig}."
        )
    if kwargs is not None:
        try:
            sig.bind(*range(n_args), **_accepted_kwargs(func, kwargs))
        except TypeError as e:
            raise InvalidMethodError(f"Metric '{name}' can not be called: {e}") from e


class MetricRegistry:
    """\
    Named collection of metrics with a fixed signature.

    Parameters
    ----------
    kind
        Human readable kind of the metrics, used in error messages.
    n_args
        Number of count vectors the metrics take (1 for diversity,
        2 for similarity).
    fallback
        Called with a metric name that is not registered. Returns a
        :class:`Metric` or raises :class:`~scvdj.InvalidMethodError`.
    """

    def __init__(
        self,
        kind: str,
        n_args: int,
        fallback: Optional[Callable[[str], Metric]] = None,
    ):
        self.kind = kind
        self.n_args = n_args
        self._fallback = fallback
        self._metrics: Dict[str, Metric] = {}

    def __contains__(self, name) -> bool:
        return name in self._metrics

    def __iter__(self) -> Iterator[str]:
        return iter(self._metrics)

    def __len__(self) -> int:
        return len(self._metrics)

    def __repr__(self):
        return f"MetricRegistry of {len(self)} {self.kind} metrics: {list(self)}"

    def register(
        self,
        name: str,
        func: Optional[Callable[..., float]] = None,
        *,
        proportions: bool = False,
        symmetric: bool = True,
        reflexive: bool = True,
    ):
        """\
        Register a metric under `name`. Can be used as decorator.

        Parameters
        ----------
        name
            Name under which the metric can be selected.
        func
            The metric function.
        proportions
            If `True`, the function receives proportions instead of counts.
        symmetric
            Whether `func(a, b) == func(b, a)`. Only relevant for similarity metrics.
        reflexive
            Whether comparing a group with itself is meaningful. Only relevant
            for similarity metrics.
        """

        def _register(f):
            _check_arity(name, f, self.n_args)
            self._metrics[name] = Metric(name, f, proportions, symmetric, reflexive)
            return f

        if func is None:
            return _register
        return _register(func)

    def get(self, metric: MetricType, **kwargs) -> Metric:
        """\
        Look up a metric by name or wrap a custom function.

        Raises
        ------
        InvalidMethodError
            If the metric is unknown or does not accept the right number of
            count vectors (and `kwargs`).
        """
        if isinstance(metric, str):
            if metric in self._metrics:
                tmp_metric = self._metrics[metric]
            elif self._fallback is not None:
                tmp_metric = self._fallback(metric)
            else:
                raise InvalidMethodError(f"Unknown {self.kind} metric '{metric}'.")
        elif callable(metric):
            tmp_metric = Metric(getattr(metric, "__name__", repr(metric)), metric)
        else:
            raise InvalidMethodError(
                f"A {self.kind} metric must be a name or a function, got {metric!r}."
            )
        _check_arity(tmp_metric.name, tmp_metric.func, self.n_args, kwargs)
        return tmp_metric

    def resolve(
        self, metric: Union[MetricType, Mapping[str, MetricType]], **kwargs
    ) -> Dict[str, Metric]:
        """Resolve a metric or a mapping `label -> metric` to labelled metrics."""
        if isinstance(metric, Mapping):
            return {label: self.get(m, **kwargs) for label, m in metric.items()}
        tmp_metric = self.get(metric, **kwargs)
        return {tmp_metric.name: tmp_metric}


def _skbio_diversity(name: str) -> Metric:
    """Delegate unknown diversity metrics to scikit-bio."""
    # make skbio an optional dependency
    try:
        import skbio.diversity
    except ImportError:
        raise InvalidMethodError(
            f"Unknown diversity metric '{name}'. Using scikit-bio’s alpha diversity "
            "metrics requires the installation of `scikit-bio`. You can install it "
            "with `pip install scikit-bio`."
        )
    if name not in skbio.diversity.get_alpha_diversity_metrics():
        raise InvalidMethodError(f"Unknown diversity metric '{name}'.")

    def _metric(counts):
        return skbio.diversity.alpha_diversity(name, counts).values[0]

    return Metric(name, _metric)


def _scipy_distance(name: str) -> Metric:
    """Delegate unknown similarity metrics to `scipy.spatial.distance`."""
    try:
        sc_distance.cdist(np.ones((1, 2)), np.ones((1, 2)), metric=name)
    except ValueError:
        raise InvalidMethodError(f"Unknown similarity metric '{name}'.")

    def _metric(a, b):
        return sc_distance.cdist(a[np.newaxis, :], b[np.newaxis, :], metric=name)[0, 0]

    return Metric(name, _metric)


#: Default registry of diversity metrics
DIVERSITY_METRICS = MetricRegistry("diversity", 1, fallback=_skbio_diversity)

#: Default registry of similarity metrics
SIMILARITY_METRICS = MetricRegistry("similarity", 2, fallback=_scipy_distance)

register_diversity_metric = DIVERSITY_METRICS.register
register_similarity_metric = SIMILARITY_METRICS.register


@register_diversity_metric("richness")
def richness(counts: np.ndarray) -> float:
    """Number of distinct clonotypes."""
    return int(np.sum(counts > 0))


@register_diversity_metric("shannon", proportions=True)
def shannon(freqs: np.ndarray) -> float:
    """Shannon entropy (natural logarithm)."""
    freqs = freqs[freqs > 0]
    return float(-np.sum(freqs * np.log(freqs)))


@register_diversity_metric("normalized_shannon_entropy", proportions=True)
def normalized_shannon_entropy(freqs: np.ndarray) -> float:
    """Normalized shannon entropy according to
    https://math.stackexchange.com/a/945172
    """
    freqs = freqs[freqs > 0]
    if len(freqs) == 1:
        # the formula below is not defined for n==1
        return 0.0
    return float(-np.sum((freqs * np.log(freqs)) / np.log(len(freqs))))


@register_diversity_metric("simpson", proportions=True)
def simpson(freqs: np.ndarray) -> float:
    """Simpson's index, the probability that two cells drawn with replacement
    belong to the same clonotype."""
    return float(np.sum(freqs**2))


@register_diversity_metric("inv_simpson", proportions=True)
def inv_simpson(freqs: np.ndarray) -> float:
    return 1.0 / simpson(freqs)


@register_diversity_metric("gini_simpson", proportions=True)
def gini_simpson(freqs: np.ndarray) -> float:
    return 1.0 - simpson(freqs)


@register_diversity_metric("chao1")
def chao1(counts: np.ndarray) -> float:
    """Bias-corrected Chao1 richness estimate."""
    singletons = np.sum(counts == 1)
    doubletons = np.sum(counts == 2)
    return float(np.sum(counts > 0) + singletons * (singletons - 1) / (2 * (doubletons + 1)))


@register_diversity_metric("DXX", proportions=True)
def dxx(freqs: np.ndarray, *, percentage: float) -> float:
    """
    D50/DXX according to https://patents.google.com/patent/WO2012097374A1/en

    Parameters
    ----------
    percentage
        Percentage of J
    """
    freqs = np.sort(freqs)[::-1]
    prop, i = 0, 0

    while prop < (percentage / 100) and i < len(freqs):
        prop += freqs[i]
        i += 1

    return i / len(freqs) * 100


@register_diversity_metric("D50", proportions=True)
def d50(freqs: np.ndarray) -> float:
    return dxx(freqs, percentage=50)


def _presence(a: np.ndarray, b: np.ndarray):
    return a > 0, b > 0


@register_similarity_metric("jaccard")
def jaccard(a: np.ndarray, b: np.ndarray) -> float:
    """Jaccard dissimilarity of the sets of clonotypes present in each group."""
    return 1.0 - jaccard_index(a, b)


@register_similarity_metric("jaccard_index")
def jaccard_index(a: np.ndarray, b: np.ndarray) -> float:
    in_a, in_b = _presence(a, b)
    return float(np.sum(in_a & in_b) / np.sum(in_a | in_b))


@register_similarity_metric("overlap")
def overlap_coefficient(a: np.ndarray, b: np.ndarray) -> float:
    """Shared clonotypes relative to the smaller repertoire."""
    in_a, in_b = _presence(a, b)
    return float(np.sum(in_a & in_b) / min(np.sum(in_a), np.sum(in_b)))


@register_similarity_metric("shared")
def shared(a: np.ndarray, b: np.ndarray) -> float:
    """Number of clonotypes present in both groups."""
    in_a, in_b = _presence(a, b)
    return int(np.sum(in_a & in_b))


@register_similarity_metric("morisita_horn")
def morisita_horn(a: np.ndarray, b: np.ndarray) -> float:
    """Morisita-Horn similarity index between two abundance distributions."""
    n_a, n_b = np.sum(a), np.sum(b)
    lambda_a = np.sum(a**2) / n_a**2
    lambda_b = np.sum(b**2) / n_b**2
    return float(2 * np.sum(a * b) / ((lambda_a + lambda_b) * n_a * n_b))


@register_similarity_metric("bray_curtis")
def bray_curtis(a: np.ndarray, b: np.ndarray) -> float:
    """Bray-Curtis dissimilarity between two abundance distributions."""
    return float(np.sum(np.abs(a - b)) / np.sum(a + b))
