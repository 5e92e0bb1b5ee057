from dataform_cli.task.definition import TaskDefinition

__all__ = ["TaskDefinition"]
