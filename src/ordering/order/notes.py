"""Operator notes — set or clear the customer-facing additional information."""

from protean import handle
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.domain import ordering
from ordering.order.order import Order


@ordering.command(part_of="Order")
class SetAdditionalInfo:
    order_id = Identifier(required=True)
    message = Text(required=True)
    updated_by = String(required=True, max_length=255)


@ordering.command(part_of="Order")
class ClearAdditionalInfo:
    order_id = Identifier(required=True)
    updated_by = String(required=True, max_length=255)


@ordering.command_handler(part_of=Order)
class AdditionalInfoHandler:
    @handle(SetAdditionalInfo)
    def set_additional_info(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.set_additional_info(command.message, command.updated_by)
        repo.add(order)
        return str(order.id)

    @handle(ClearAdditionalInfo)
    def clear_additional_info(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.clear_additional_info(command.updated_by)
        repo.add(order)
        return str(order.id)
