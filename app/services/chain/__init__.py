"""
Chain video generation

Plans a long video as N continuous segments, generates them one after another
(each seeded with the previous segment's last frame) and joins them into one
file.
"""
