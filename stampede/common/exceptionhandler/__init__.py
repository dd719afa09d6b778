from stampede.common.exceptionhandler.exception_handler import handle_exception, run_with_exception_handler

__all__ = ["handle_exception", "run_with_exception_handler"]
