"""
Pipeline package for the object detection service.

Contains:
- `acquire`     : remote image fetch and validation
- `sizing`      : pixel-budget downsampling
- `detection`   : detector capability and client
- `coordinates` : normalized -> pixel coordinate reconciliation
- `taxonomy`    : label -> category mapping
- `render`      : annotated image and thumbnails
- `cache`       : content-addressed result cache
- `nodes`       : LangGraph node callables operating over `DetectionState`
- `graph`       : StateGraph builder and `DetectionPipeline`
"""
