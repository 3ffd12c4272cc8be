"""
All the structures to describe the resources, the reviews, and the patches.

All the functions here are purely data-manipulative and computational.
No external calls or any i/o activities are done here.
"""
