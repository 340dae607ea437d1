from pydantic import BaseModel, ConfigDict, Field

from .enums import TransformKind


class CipherTransform(BaseModel):
    """A transform function cut out of the player script, ready to evaluate."""

    model_config = ConfigDict(frozen=True)

    kind: TransformKind
    name: str = Field(..., description="Entry-point function name")
    source: str = Field(..., description="Self-contained program defining the function")


class CipherTransforms(BaseModel):
    """Transforms extracted from one player version. Either may be missing."""

    model_config = ConfigDict(frozen=True)

    signature: CipherTransform | None = None
    n_param: CipherTransform | None = None

    def get(self, kind: TransformKind) -> CipherTransform | None:
        return self.signature if kind == TransformKind.SIGNATURE else self.n_param


class PlayerAsset(BaseModel):
    """One version of the player script and what was extracted from it."""

    model_config = ConfigDict(frozen=True)

    version: str
    url: str
    script: str = Field(..., repr=False)
    signature_timestamp: int | None = None
    transforms: CipherTransforms = Field(default_factory=CipherTransforms)
