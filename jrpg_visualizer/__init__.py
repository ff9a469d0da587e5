"""JRPG Visualizer — narrates a coding agent's todo list as a 16-bit battle."""
