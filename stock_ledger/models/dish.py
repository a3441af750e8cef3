from tortoise import fields, models


class DishTemplate(models.Model):
    id = fields.UUIDField(primary_key=True)
    brand = fields.ForeignKeyField("models.Brand", related_name="dish_templates")
    name = fields.CharField(max_length=255)
    base_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        table = "dish_templates"
        indexes = [
            ("brand_id",),
        ]


class Option(models.Model):
    id = fields.UUIDField(primary_key=True)
    brand = fields.ForeignKeyField("models.Brand", related_name="options")
    name = fields.CharField(max_length=255)
    # Selecting this option also consumes stock of the referenced template
    ref_dish_template = fields.ForeignKeyField(
        "models.DishTemplate", related_name="referencing_options", null=True
    )
    price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)

    class Meta:
        table = "options"


class DishInstance(models.Model):
    """A concrete, priced configuration of a template chosen for one order line."""
    id = fields.UUIDField(primary_key=True)
    brand = fields.ForeignKeyField("models.Brand", related_name="dish_instances")
    template = fields.ForeignKeyField("models.DishTemplate", related_name="instances")
    name = fields.CharField(max_length=255)
    base_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    # [{"option_category_id", "option_category_name", "selections": [{"option_id", "name", "price"}]}]
    options = fields.JSONField(default=list)
    final_price = fields.DecimalField(max_digits=12, decimal_places=2, default=0)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "dish_instances"
