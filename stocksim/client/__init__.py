from stocksim.client.session import ClientSession, run_interactive

__all__ = ["ClientSession", "run_interactive"]
