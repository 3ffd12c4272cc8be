import pydantic

import kubehook


class FooSpec(kubehook.Model):
    replicas: int | None = None
    image: str | None = None


class Foo(kubehook.Resource):
    spec: FooSpec = pydantic.Field(default_factory=FooSpec)

    def set_defaults(self, context):
        if self.spec.replicas is None:
            self.spec.replicas = 1

    def validate_resource(self, context):
        errors = None
        if self.spec.replicas is not None and self.spec.replicas < 0:
            errors = kubehook.FieldError.also_of(errors, kubehook.invalid_value(
                self.spec.replicas, "replicas", "must be non-negative").via_field("spec"))
        if not self.spec.image:
            errors = kubehook.FieldError.also_of(errors, kubehook.missing_field("spec.image"))
        return errors


registry = kubehook.OperatorRegistry(
    resources=kubehook.HandlerRegistry({
        kubehook.GroupVersionKind('kubehook.dev', 'v1', 'KubehookExample'): Foo,
    }),
)
