from dataclasses import dataclass, field


@dataclass
class MetaData:
    quantization_level: int | None = None
    mklein_version: str | None = None


@dataclass
class TensorIndex:
    """Names, shapes and dtypes of the tensors stored for one component, read from file headers only."""

    shapes: dict[str, tuple[int, ...]] = field(default_factory=dict)
    dtypes: dict[str, str] = field(default_factory=dict)
    meta_data: MetaData = field(default_factory=MetaData)

    @property
    def num_parameters(self) -> int:
        total = 0
        for shape in self.shapes.values():
            count = 1
            for dim in shape:
                count *= dim
            total += count
        return total

    def count_indexed(self, prefix: str) -> int:
        indices = set()
        for name in self.shapes:
            if name.startswith(prefix):
                head = name[len(prefix) :].split(".", 1)[0]
                if head.isdigit():
                    indices.add(int(head))
        return max(indices) + 1 if indices else 0


@dataclass
class LoadedWeights:
    components: dict[str, dict]
    meta_data: MetaData

    def __getattr__(self, name: str) -> dict | None:
        if name in ("components", "meta_data"):
            return object.__getattribute__(self, name)
        return self.components.get(name)
