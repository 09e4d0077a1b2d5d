"""压缩任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

from nekopress.core.exceptions import InvalidConfigurationError


class OutputFormat(str, Enum):
    """支持的输出格式。"""

    JPEG = "JPEG"
    WEBP = "WebP"

    @property
    def extension(self) -> str:
        return self.value.lower()

    @property
    def pillow_format(self) -> str:
        return self.name

    @classmethod
    def parse(cls, value: str) -> "OutputFormat":
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        if lowered == "jpg":
            return cls.JPEG
        raise InvalidConfigurationError(f"未知的输出格式: {value}")


class CompressionTier(str, Enum):
    """压缩档位：fast 压得最狠，slow 画质最好。"""

    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"

    @classmethod
    def parse(cls, value: str) -> "CompressionTier":
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise InvalidConfigurationError(f"未知的压缩档位: {value}") from exc


@dataclass(frozen=True, slots=True)
class QualityTable:
    """档位到压缩质量系数（0.0~1.0）的映射。"""

    fast: float
    medium: float
    slow: float

    def factor_for(self, tier: CompressionTier) -> float:
        return getattr(self, tier.value)

    def quality_for(self, tier: CompressionTier) -> int:
        """转换为 Pillow 使用的 1~100 整数质量。"""

        return max(1, min(100, int(round(self.factor_for(tier) * 100))))

    def validate(self) -> None:
        for tier in CompressionTier:
            factor = self.factor_for(tier)
            if not 0.0 < factor <= 1.0:
                raise InvalidConfigurationError(f"{tier.value} 档质量系数必须在 (0, 1] 之间，当前为 {factor}")

    @classmethod
    def parse(cls, value: str) -> "QualityTable":
        """解析形如 ``fast=0.2,medium=0.5,slow=0.8`` 的字符串。"""

        factors: dict[str, float] = {}
        for part in value.split(","):
            if not part.strip():
                continue
            key, sep, raw = part.partition("=")
            if not sep:
                raise InvalidConfigurationError(f"质量表条目必须形如 fast=0.3: {part}")
            tier = CompressionTier.parse(key)
            try:
                factors[tier.value] = float(raw)
            except ValueError as exc:
                raise InvalidConfigurationError(f"质量系数必须为数字: {raw}") from exc

        missing = [tier.value for tier in CompressionTier if tier.value not in factors]
        if missing:
            raise InvalidConfigurationError(f"质量表缺少档位: {', '.join(missing)}")

        table = cls(**factors)
        table.validate()
        return table


JPEG_QUALITY = QualityTable(fast=0.1, medium=0.3, slow=0.5)
WEBP_QUALITY = QualityTable(fast=0.3, medium=0.7, slow=0.95)
# 早期版本使用的 WebP 映射，保留以便切换。
LEGACY_WEBP_QUALITY = QualityTable(fast=0.2, medium=0.5, slow=0.8)

DEFAULT_MAX_DIMENSION = 2048
DEFAULT_DRAIN_INTERVAL = 0.2


def default_quality_tables() -> Mapping[OutputFormat, QualityTable]:
    return MappingProxyType({OutputFormat.JPEG: JPEG_QUALITY, OutputFormat.WEBP: WEBP_QUALITY})


@dataclass(frozen=True, slots=True)
class PipelineConfig:
    """单次压缩运行的配置快照，运行期间不可变。"""

    output_format: OutputFormat = OutputFormat.JPEG
    tier: CompressionTier = CompressionTier.MEDIUM
    output_dir: Optional[Path] = None
    delete_source: bool = False
    relocate_to: Optional[Path] = None
    max_dimension: int = DEFAULT_MAX_DIMENSION
    quality_tables: Mapping[OutputFormat, QualityTable] = field(default_factory=default_quality_tables)

    def quality_table(self, output_format: Optional[OutputFormat] = None) -> QualityTable:
        fmt = output_format or self.output_format
        try:
            return self.quality_tables[fmt]
        except KeyError as exc:
            raise InvalidConfigurationError(f"缺少 {fmt.value} 的质量表") from exc

    def with_quality_table(self, output_format: OutputFormat, table: QualityTable) -> "PipelineConfig":
        """返回替换了某个格式质量表的新配置。"""

        tables = dict(self.quality_tables)
        tables[output_format] = table
        return PipelineConfig(
            output_format=self.output_format,
            tier=self.tier,
            output_dir=self.output_dir,
            delete_source=self.delete_source,
            relocate_to=self.relocate_to,
            max_dimension=self.max_dimension,
            quality_tables=MappingProxyType(tables),
        )

    def validate(self) -> None:
        """检查配置合法性，不合法时抛出 InvalidConfigurationError。"""

        if not isinstance(self.output_format, OutputFormat):
            raise InvalidConfigurationError(f"未知的输出格式: {self.output_format}")
        if not isinstance(self.tier, CompressionTier):
            raise InvalidConfigurationError(f"未知的压缩档位: {self.tier}")
        if self.max_dimension <= 0:
            raise InvalidConfigurationError("max_dimension 必须大于 0")
        if self.relocate_to is not None and not self.delete_source:
            raise InvalidConfigurationError("relocate_to 仅在启用 delete_source 时有效")
        self.quality_table().validate()
