from opforge.operations.builder import operation
from opforge.operations.compiled import OperationSet
from opforge.schema.dsl import number, object_, string

create_order = (
    operation()
    .post("/orders")
    .summary("Create order")
    .tags("orders")
    .with_body(object_({"item": string().required(), "qty": number().min(1)}).required())
    .with_created(object_({"id": string()}))
    .with_create_errors()
    .handler(None)
)

ORDERS = OperationSet([create_order])
