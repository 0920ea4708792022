"""Representation of the objects managed by the ApplicationSet controller.

Objects are parsed from kubernetes style documents into typed dataclasses and
serialized back with `to_doc`. Field names follow python conventions and use
mashumaro aliases for the camelCase names used on the wire.
"""

import base64
import binascii
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any, ClassVar

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
from mashumaro.exceptions import MissingField, InvalidFieldValue

from .exceptions import InputException, InvalidGeneratorError
from .params import stringify

__all__ = [
    "NamedResource",
    "OwnerReference",
    "LabelSelector",
    "ApplicationSource",
    "ApplicationDestination",
    "ApplicationSpec",
    "Application",
    "ListGenerator",
    "ClusterGenerator",
    "GitGenerator",
    "ApplicationSetGenerator",
    "ApplicationSet",
    "Secret",
    "parse_raw_obj",
]

_LOGGER = logging.getLogger(__name__)


# Match a prefix of apiVersion to ensure we have the right type of object.
ARGOPROJ_DOMAIN = "argoproj.io"
ARGOPROJ_API_VERSION = "argoproj.io/v1alpha1"
APPLICATION_KIND = "Application"
APPLICATION_SET_KIND = "ApplicationSet"
SECRET_KIND = "Secret"
DEFAULT_NAMESPACE = "argocd"

# Cluster registration records are secrets carrying this label
SECRET_TYPE_LABEL = "argocd.argoproj.io/secret-type"
SECRET_TYPE_CLUSTER = "cluster"

# Applied to every generated Application to identify the owning set
APPLICATION_SET_NAME_LABEL = "applicationset.argoproj.io/name"

# Finalizer that makes Application deletion cascade to its deployed resources
RESOURCES_FINALIZER = "resources-finalizer.argocd.argoproj.io"


def _check_version(doc: dict[str, Any], version: str) -> None:
    """Assert that the resource has the specified version."""
    if not (api_version := doc.get("apiVersion")):
        raise InputException(f"Invalid object missing apiVersion: {doc}")
    if not api_version.startswith(version):
        raise InputException(f"Invalid object expected '{version}': {doc}")


def _metadata(doc: dict[str, Any]) -> dict[str, Any]:
    if not (metadata := doc.get("metadata")):
        raise InputException(f"Invalid object missing metadata: {doc}")
    if not metadata.get("name"):
        raise InputException(f"Invalid object missing metadata.name: {doc}")
    return metadata


def _string_map(values: dict[str, Any] | None) -> dict[str, str] | None:
    """Coerce YAML scalars such as `tier: 1` into the strings kubernetes expects."""
    if values is None:
        return None
    if not isinstance(values, dict):
        raise InputException(f"Expected a mapping of strings but got: {values}")
    return {str(key): stringify(value) for key, value in values.items()}


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


@dataclass
class OwnerReference(BaseManifest):
    """Back reference from a dependent object to its owner."""

    api_version: str = field(metadata=field_options(alias="apiVersion"))
    kind: str
    name: str
    uid: str
    controller: bool | None = None
    block_owner_deletion: bool | None = field(
        metadata=field_options(alias="blockOwnerDeletion"), default=None
    )


@dataclass(kw_only=True)
class ObjectManifest(BaseManifest):
    """Fields common to all stored objects.

    The `uid`, `resource_version` and `creation_timestamp` fields are owned by
    the store and are filled in when an object is created.
    """

    kind: ClassVar[str]

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object."""

    labels: dict[str, str] | None = None
    annotations: dict[str, str] | None = None

    uid: str | None = None
    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    creation_timestamp: str | None = field(
        metadata=field_options(alias="creationTimestamp"), default=None
    )
    owner_references: list[OwnerReference] | None = field(
        metadata=field_options(alias="ownerReferences"), default=None
    )

    @property
    def resource_id(self) -> NamedResource:
        return NamedResource(self.kind, self.namespace, self.name)

    @property
    def namespaced_name(self) -> str:
        """Return the namespace and name concatenated as an id."""
        return self.resource_id.namespaced_name

    def is_owned_by(self, uid: str) -> bool:
        """Return True if this object has an owner reference to `uid`."""
        return any(ref.uid == uid for ref in self.owner_references or ())

    def _metadata_doc(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name}
        for key, value in (
            ("namespace", self.namespace),
            ("labels", self.labels),
            ("annotations", self.annotations),
            ("uid", self.uid),
            ("resourceVersion", self.resource_version),
            ("creationTimestamp", self.creation_timestamp),
        ):
            if value is not None:
                metadata[key] = value
        if self.owner_references:
            metadata["ownerReferences"] = [
                ref.to_dict() for ref in self.owner_references
            ]
        return metadata

    @staticmethod
    def _metadata_kwargs(metadata: dict[str, Any]) -> dict[str, Any]:
        owner_references = None
        if refs := metadata.get("ownerReferences"):
            try:
                owner_references = [OwnerReference.from_dict(ref) for ref in refs]
            except (MissingField, InvalidFieldValue) as err:
                raise InputException(f"Invalid ownerReferences: {err}") from err
        return {
            "name": metadata["name"],
            "namespace": metadata.get("namespace", DEFAULT_NAMESPACE),
            "labels": _string_map(metadata.get("labels")),
            "annotations": _string_map(metadata.get("annotations")),
            "uid": metadata.get("uid"),
            "resource_version": metadata.get("resourceVersion"),
            "creation_timestamp": metadata.get("creationTimestamp"),
            "owner_references": owner_references,
        }


@dataclass
class LabelSelectorRequirement(BaseManifest):
    """A single set based label requirement."""

    key: str
    operator: str
    values: list[str] | None = None

    def matches(self, labels: dict[str, str]) -> bool:
        """Return True if the labels satisfy this requirement."""
        if self.operator == "In":
            return labels.get(self.key) in (self.values or [])
        if self.operator == "NotIn":
            return labels.get(self.key) not in (self.values or [])
        if self.operator == "Exists":
            return self.key in labels
        if self.operator == "DoesNotExist":
            return self.key not in labels
        raise InvalidGeneratorError(
            f"Unsupported label selector operator '{self.operator}' for key '{self.key}'"
        )


@dataclass
class LabelSelector(BaseManifest):
    """A label query over a set of objects.

    An empty selector matches every object.
    """

    match_labels: dict[str, str] | None = field(
        metadata=field_options(alias="matchLabels"), default=None
    )
    match_expressions: list[LabelSelectorRequirement] | None = field(
        metadata=field_options(alias="matchExpressions"), default=None
    )

    def matches(self, labels: dict[str, str] | None) -> bool:
        """Return True if the labels satisfy every term of the selector."""
        labels = labels or {}
        for key, value in (self.match_labels or {}).items():
            if labels.get(key) != value:
                return False
        return all(req.matches(labels) for req in self.match_expressions or ())


@dataclass
class ApplicationSource(BaseManifest):
    """Location of the manifests deployed by an Application."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    path: str | None = None
    target_revision: str | None = field(
        metadata=field_options(alias="targetRevision"), default=None
    )
    chart: str | None = None
    helm: dict[str, Any] | None = None
    kustomize: dict[str, Any] | None = None
    directory: dict[str, Any] | None = None


@dataclass
class ApplicationDestination(BaseManifest):
    """Cluster and namespace an Application deploys to."""

    server: str | None = None
    name: str | None = None
    namespace: str | None = None


@dataclass
class ApplicationSpec(BaseManifest):
    """Desired content of an Application."""

    source: ApplicationSource
    destination: ApplicationDestination
    project: str = "default"
    sync_policy: dict[str, Any] | None = field(
        metadata=field_options(alias="syncPolicy"), default=None
    )
    ignore_differences: list[dict[str, Any]] | None = field(
        metadata=field_options(alias="ignoreDifferences"), default=None
    )


@dataclass(kw_only=True)
class Application(ObjectManifest):
    """A deployment descriptor generated from an ApplicationSet."""

    kind: ClassVar[str] = APPLICATION_KIND

    spec: ApplicationSpec

    finalizers: list[str] | None = None

    status: dict[str, Any] | None = None
    """Status is owned by the system and never rendered from a template."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Application":
        """Parse an Application from a kubernetes resource."""
        _check_version(doc, ARGOPROJ_DOMAIN)
        metadata = _metadata(doc)
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not spec.get("source"):
            raise InputException(f"Invalid {cls.__name__} missing spec.source: {doc}")
        if not spec.get("destination"):
            raise InputException(
                f"Invalid {cls.__name__} missing spec.destination: {doc}"
            )
        try:
            app_spec = ApplicationSpec.from_dict(spec)
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(f"Invalid {cls.__name__} spec: {err}") from err
        return cls(
            **cls._metadata_kwargs(metadata),
            finalizers=metadata.get("finalizers"),
            spec=app_spec,
            status=doc.get("status"),
        )

    def to_doc(self) -> dict[str, Any]:
        """Serialize the Application as a kubernetes resource."""
        metadata = self._metadata_doc()
        if self.finalizers is not None:
            metadata["finalizers"] = self.finalizers
        doc: dict[str, Any] = {
            "apiVersion": ARGOPROJ_API_VERSION,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }
        if self.status is not None:
            doc["status"] = self.status
        return doc


class GeneratorKind(StrEnum):
    """The populated variant of an ApplicationSetGenerator."""

    LIST = "list"
    CLUSTERS = "clusters"
    GIT = "git"


@dataclass
class ListGenerator(BaseManifest):
    """Generates one parameter mapping per static element."""

    elements: list[Any] = field(default_factory=list)
    """Validated when the generator is evaluated."""
    template: dict[str, Any] | None = None


@dataclass
class ClusterGenerator(BaseManifest):
    """Generates one parameter mapping per registered cluster."""

    selector: LabelSelector = field(default_factory=LabelSelector)
    values: dict[str, str] | None = None
    template: dict[str, Any] | None = None


@dataclass
class GitDirectoryGeneratorItem(BaseManifest):
    path: str
    exclude: bool = False


@dataclass
class GitFileGeneratorItem(BaseManifest):
    path: str


@dataclass
class GitGenerator(BaseManifest):
    """Generates parameter mappings from directories or files in a repository."""

    repo_url: str = field(metadata=field_options(alias="repoURL"))
    revision: str = "HEAD"
    directories: list[GitDirectoryGeneratorItem] | None = None
    files: list[GitFileGeneratorItem] | None = None
    template: dict[str, Any] | None = None


@dataclass
class ApplicationSetGenerator(BaseManifest):
    """A tagged union of the supported generator kinds.

    Exactly one of the variants must be populated. Parsing is lenient so that
    a malformed generator is reported when it is evaluated, without rejecting
    the other generators of the same ApplicationSet.
    """

    list_generator: ListGenerator | None = field(
        metadata=field_options(alias="list"), default=None
    )
    cluster_generator: ClusterGenerator | None = field(
        metadata=field_options(alias="clusters"), default=None
    )
    git_generator: GitGenerator | None = field(
        metadata=field_options(alias="git"), default=None
    )

    @property
    def kind(self) -> GeneratorKind | None:
        """Return the populated variant, or None when the generator is empty."""
        populated = [
            kind
            for kind, value in (
                (GeneratorKind.LIST, self.list_generator),
                (GeneratorKind.CLUSTERS, self.cluster_generator),
                (GeneratorKind.GIT, self.git_generator),
            )
            if value is not None
        ]
        if len(populated) > 1:
            raise InvalidGeneratorError(
                f"Generator must have exactly one kind, found: {', '.join(populated)}"
            )
        return populated[0] if populated else None

    @property
    def template(self) -> dict[str, Any] | None:
        """Return the template override of the populated variant."""
        for value in (self.list_generator, self.cluster_generator, self.git_generator):
            if value is not None:
                return value.template
        return None


@dataclass
class ApplicationSetSyncPolicy(BaseManifest):
    preserve_resources_on_deletion: bool = field(
        metadata=field_options(alias="preserveResourcesOnDeletion"), default=False
    )


@dataclass(kw_only=True)
class ApplicationSet(ObjectManifest):
    """Declares generators and the template for the Applications they produce."""

    kind: ClassVar[str] = APPLICATION_SET_KIND

    generators: list[ApplicationSetGenerator] = field(default_factory=list)
    """Evaluated in order; each produces a list of parameter mappings."""

    template: dict[str, Any] = field(default_factory=dict)
    """Raw Application template with `metadata` and `spec` keys."""

    sync_policy: ApplicationSetSyncPolicy = field(
        default_factory=ApplicationSetSyncPolicy
    )

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "ApplicationSet":
        """Parse an ApplicationSet from a kubernetes resource."""
        _check_version(doc, ARGOPROJ_DOMAIN)
        metadata = _metadata(doc)
        if not (spec := doc.get("spec")):
            raise InputException(f"Invalid {cls.__name__} missing spec: {doc}")
        if not isinstance(template := spec.get("template"), dict):
            raise InputException(
                f"Invalid {cls.__name__} missing spec.template: {doc}"
            )
        try:
            generators = [
                ApplicationSetGenerator.from_dict(generator or {})
                for generator in spec.get("generators") or ()
            ]
            sync_policy = ApplicationSetSyncPolicy.from_dict(
                spec.get("syncPolicy") or {}
            )
        except (MissingField, InvalidFieldValue) as err:
            raise InputException(f"Invalid {cls.__name__} spec: {err}") from err
        return cls(
            **cls._metadata_kwargs(metadata),
            generators=generators,
            template=template,
            sync_policy=sync_policy,
        )

    def to_doc(self) -> dict[str, Any]:
        """Serialize the ApplicationSet as a kubernetes resource."""
        return {
            "apiVersion": ARGOPROJ_API_VERSION,
            "kind": self.kind,
            "metadata": self._metadata_doc(),
            "spec": {
                "generators": [generator.to_dict() for generator in self.generators],
                "template": self.template,
                "syncPolicy": self.sync_policy.to_dict(),
            },
        }


@dataclass(kw_only=True)
class Secret(ObjectManifest):
    """A Secret; cluster registration records are secrets with a type label."""

    kind: ClassVar[str] = SECRET_KIND

    data: dict[str, str] | None = None
    """Decoded secret data."""

    @classmethod
    def parse_doc(cls, doc: dict[str, Any]) -> "Secret":
        """Parse a Secret, decoding its base64 `data` values."""
        _check_version(doc, "v1")
        metadata = _metadata(doc)
        data: dict[str, str] = {}
        try:
            for key, value in (doc.get("data") or {}).items():
                data[key] = base64.b64decode(value).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as err:
            raise InputException(
                f"Unable to decode data for Secret {metadata['name']}: {err}"
            ) from err
        data.update(_string_map(doc.get("stringData")) or {})
        return cls(**cls._metadata_kwargs(metadata), data=data)

    @property
    def is_cluster(self) -> bool:
        return (self.labels or {}).get(SECRET_TYPE_LABEL) == SECRET_TYPE_CLUSTER


def parse_raw_obj(obj: dict[str, Any]) -> ObjectManifest:
    """Parse a raw kubernetes object into a supported manifest object."""
    if not (kind := obj.get("kind")):
        raise InputException(f"Invalid object missing kind: {obj}")
    if not obj.get("apiVersion"):
        raise InputException(f"Invalid object missing apiVersion: {obj}")
    if kind == APPLICATION_SET_KIND:
        return ApplicationSet.parse_doc(obj)
    if kind == APPLICATION_KIND:
        return Application.parse_doc(obj)
    if kind == SECRET_KIND:
        return Secret.parse_doc(obj)
    raise InputException(f"Unsupported object kind '{kind}'")
