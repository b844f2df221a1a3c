"""
Built-in CheckpointBackup CustomResourceDefinition.

Installed on a member cluster when none of the mounted CRD files can be
read. Keep in sync with config/crd/bases/migration.dcnlab.com_checkpointbackups.yaml.
"""

from __future__ import annotations

__all__ = ["CHECKPOINT_BACKUP_CRD_YAML"]

CHECKPOINT_BACKUP_CRD_YAML = """\
apiVersion: apiextensions.k8s.io/v1
kind: CustomResourceDefinition
metadata:
  name: checkpointbackups.migration.dcnlab.com
spec:
  group: migration.dcnlab.com
  names:
    kind: CheckpointBackup
    listKind: CheckpointBackupList
    plural: checkpointbackups
    singular: checkpointbackup
  scope: Namespaced
  versions:
  - name: v1
    served: true
    storage: true
    subresources:
      status: {}
    schema:
      openAPIV3Schema:
        type: object
        properties:
          apiVersion:
            type: string
          kind:
            type: string
          metadata:
            type: object
          spec:
            type: object
            required:
            - podRef
            - registry
            - resourceRef
            - schedule
            properties:
              schedule:
                type: string
              podRef:
                type: object
                required:
                - name
                properties:
                  name:
                    type: string
                  namespace:
                    type: string
              resourceRef:
                type: object
                required:
                - apiVersion
                - kind
                - name
                properties:
                  apiVersion:
                    type: string
                  kind:
                    type: string
                  name:
                    type: string
                  namespace:
                    type: string
              registry:
                type: object
                required:
                - repository
                - url
                properties:
                  url:
                    type: string
                  repository:
                    type: string
                  secretRef:
                    type: object
                    required:
                    - name
                    properties:
                      name:
                        type: string
              containers:
                type: array
                items:
                  type: object
                  required:
                  - image
                  - name
                  properties:
                    name:
                      type: string
                    image:
                      type: string
          status:
            type: object
"""
