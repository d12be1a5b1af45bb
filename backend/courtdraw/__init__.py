"""courtdraw: tournament groups, knockout brackets, match progression and ratings."""
