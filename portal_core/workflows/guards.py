# portal_core/workflows/guards.py

from django.core.exceptions import PermissionDenied
from django.db import models


class WorkflowWriteGuardMixin(models.Model):
    """
    Keeps lifecycle fields out of reach of plain ``save()``.

    The executor moves a project by a conditional queryset ``update()``
    and never saves these fields through the instance, so any instance
    save that changes one of ``WORKFLOW_FIELDS`` is a bypass of the
    review chain. New rows must start in ``WORKFLOW_INITIAL_STATE``.

    Data fixes and fixtures may pass ``_workflow_bypass=True`` to save().
    """

    WORKFLOW_FIELDS = ("status",)
    WORKFLOW_STATE_FIELD = "status"
    WORKFLOW_INITIAL_STATE = None

    class Meta:
        abstract = True

    def _stored_workflow_values(self):
        return (
            self.__class__.objects.filter(pk=self.pk)
            .values(*self.WORKFLOW_FIELDS)
            .first()
        )

    def save(self, *args, **kwargs):
        bypass = bool(kwargs.pop("_workflow_bypass", False))

        if not bypass:
            if self._state.adding:
                initial = self.WORKFLOW_INITIAL_STATE
                current = getattr(self, self.WORKFLOW_STATE_FIELD, None)
                if initial is not None and current != initial:
                    raise PermissionDenied(
                        f"New {self._meta.verbose_name} records must start as '{initial}'."
                    )
            else:
                stored = self._stored_workflow_values()
                if stored is not None:
                    changed = [
                        name for name, old in stored.items()
                        if getattr(self, name, None) != old
                    ]
                    if changed:
                        raise PermissionDenied(
                            f"{', '.join(changed)} can only change through a workflow transition."
                        )

        return super().save(*args, **kwargs)
