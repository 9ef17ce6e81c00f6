# llamaboot - build and debug bootable llamafiles (BIOS / UEFI, QEMU)

__version__ = "0.3.0"
