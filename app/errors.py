class SchemaLabError(Exception):
    """Base class for errors raised by the schema tooling."""


class UnknownQueryError(SchemaLabError, KeyError):
    def __init__(self, name):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return f"Unknown query: {self.name}"


class UnknownVariantError(SchemaLabError, KeyError):
    def __init__(self, name):
        super().__init__(name)
        self.name = name

    def __str__(self):
        return f"Unknown schema variant: {self.name}"


class PartitionPlanError(SchemaLabError, ValueError):
    pass
