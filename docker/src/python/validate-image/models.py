from typing import Annotated, Any, Literal
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from enum import StrEnum


class ApiVersion(StrEnum):
    V1 = "admission.k8s.io/v1"
    V1BETA1 = "admission.k8s.io/v1beta1"


class Operation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"


# https://kubernetes.io/docs/reference/generated/kubernetes-api/v1.30/#status-v1-meta
class AdmissionReviewStatus(BaseModel):
    code: int | None = None
    message: str | None = None
    reason: str | None = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionResponse
class AdmissionResponse(BaseModel):
    uid: str
    allowed: bool
    status: AdmissionReviewStatus | None = None
    warnings: list[str] | None = None


class GroupVersionKind(BaseModel):
    group: str = ""
    version: str = ""
    kind: str = ""


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionRequest
class AdmissionRequest(BaseModel):
    uid: str
    kind: GroupVersionKind | None = None
    name: str | None = None
    namespace: str | None = None
    operation: Operation = Operation.CREATE

    # Left undecoded here; see validate.decode_pod.
    object: Any = None


# https://kubernetes.io/docs/reference/config-api/apiserver-admission.v1/#admission-k8s-io-v1-AdmissionReview
class AdmissionReview(BaseModel):
    apiVersion: ApiVersion = ApiVersion.V1
    kind: Literal["AdmissionReview"] = "AdmissionReview"
    request: AdmissionRequest | None = None
    response: AdmissionResponse | None = None

    @model_validator(mode="after")
    def validate_model(self):
        if not (self.request or self.response):
            raise ValueError("must contain a request or a response")

        return self


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


def optional_str(val):
    # Names are only used in log messages, so a value of the wrong type is
    # dropped instead of failing the decode.
    return val if isinstance(val, str) else None


OptionalName = Annotated[str | None, BeforeValidator(optional_str)]


class Container(FrozenModel):
    name: OptionalName = None
    image: str = ""

    @field_validator("image", mode="before")
    @classmethod
    def validate_image(cls, val):
        # A null image is treated the same as a missing one.
        return "" if val is None else val


class PodSpec(FrozenModel):
    containers: tuple[Container, ...] = ()

    @field_validator("containers", mode="before")
    @classmethod
    def validate_containers(cls, val):
        return () if val is None else val


class Metadata(FrozenModel):
    name: OptionalName = None
    namespace: OptionalName = None
    generateName: OptionalName = None


class Pod(FrozenModel):
    """The fields of a Pod that admission policy looks at.

    Everything else in the submitted object is ignored, so newer or older
    Pod schemas decode without error as long as the fields used here have
    the expected shape.
    """

    metadata: Metadata = Metadata()
    spec: PodSpec = PodSpec()

    @field_validator("metadata", mode="before")
    @classmethod
    def validate_metadata(cls, val):
        return val if isinstance(val, (dict, Metadata)) else Metadata()

    @field_validator("spec", mode="before")
    @classmethod
    def validate_spec(cls, val):
        return PodSpec() if val is None else val


class Violation(FrozenModel):
    rule: str
    message: str
    index: int
    container: str | None = None


class Allowed(FrozenModel):
    outcome: Literal["allowed"] = "allowed"
    reason: str | None = None


class Denied(FrozenModel):
    outcome: Literal["denied"] = "denied"
    reason: str = Field(min_length=1)
    violations: tuple[Violation, ...] = ()


class Errored(FrozenModel):
    outcome: Literal["errored"] = "errored"
    code: int
    reason: str = Field(min_length=1)


Verdict = Annotated[Allowed | Denied | Errored, Field(discriminator="outcome")]
