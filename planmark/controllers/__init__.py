"""
Application controllers for managing interactions between UI and core logic.
"""
from .input_handler import UserInputHandler
from .interaction_controller import InteractionController, Tool
from .view_controller import ViewController
from .annotation_controller import AnnotationController

__all__ = [
    'UserInputHandler',
    'InteractionController',
    'Tool',
    'ViewController',
    'AnnotationController'
]
