"""Result reporting."""
