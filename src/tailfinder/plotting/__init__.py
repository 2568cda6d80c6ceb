from .tail_plotting import save_tail_plot

__all__ = ["save_tail_plot"]
