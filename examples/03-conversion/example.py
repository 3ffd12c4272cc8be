import pydantic

import kubehook


class SpecV1(kubehook.Model):
    size: str | None = None


class ExampleV1(kubehook.Resource):
    spec: SpecV1 = pydantic.Field(default_factory=SpecV1)

    def set_defaults(self, context):
        if self.spec.size is None:
            self.spec.size = 'small'


class SpecV2(kubehook.Model):
    dimension: str | None = None


class ExampleV2(kubehook.Resource):
    spec: SpecV2 = pydantic.Field(default_factory=SpecV2)

    def convert_to(self, context, hub):
        hub.metadata = self.metadata.model_copy(deep=True)
        hub.spec = SpecV1(size=self.spec.dimension)

    def convert_from(self, context, hub):
        self.metadata = hub.metadata.model_copy(deep=True)
        self.spec = SpecV2(dimension=hub.spec.size)


registry = kubehook.OperatorRegistry(
    resources=kubehook.HandlerRegistry({
        kubehook.GroupVersionKind('kubehook.dev', 'v1', 'KubehookExample'): ExampleV1,
        kubehook.GroupVersionKind('kubehook.dev', 'v2', 'KubehookExample'): ExampleV2,
    }),
    conversions={
        kubehook.GroupKind('kubehook.dev', 'KubehookExample'): kubehook.GroupKindConversion(
            definition_name='kubehookexamples.kubehook.dev',
            hub_version='v1',
            zygotes={'v1': ExampleV1, 'v2': ExampleV2},
        ),
    },
)
